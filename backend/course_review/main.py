"""Course Review — FastAPI application entry point."""

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from course_review.api.v1.admin import router as admin_router
from course_review.api.v1.auth import router as auth_router
from course_review.api.v1.billing import router as billing_router
from course_review.api.v1.courses import router as courses_router
from course_review.api.v1.premium import router as premium_router
from course_review.api.v1.reviews import router as reviews_router
from course_review.api.v1.webhooks import router as webhooks_router
from course_review.config import settings
from course_review.exceptions import CourseReviewError

# Configure root logger so all course_review.* loggers output to stderr.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    yield
    # Shutdown — dispose engine connections
    from course_review.database import engine

    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Anonymous course reviews for university students, with a premium tier.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error handlers — one JSON shape for every failure
# ---------------------------------------------------------------------------


def _internal_error_response(reference: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "InternalServerError",
            "message": "Internal server error",
            "details": {"reference": reference},
        },
    )


@app.exception_handler(CourseReviewError)
async def course_review_error_handler(request: Request, exc: CourseReviewError) -> JSONResponse:
    if exc.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR:
        reference = uuid.uuid4().hex[:12]
        logger.error(
            "%s %s failed: %s %s (ref=%s)", request.method, request.url.path, exc.message, exc.details, reference
        )
        return _internal_error_response(reference)
    if exc.status_code > 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "ValidationError",
            "message": "Invalid request",
            "details": {"errors": jsonable_encoder(exc.errors())},
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Internal details stay in the log; the client gets a reference to quote
    reference = uuid.uuid4().hex[:12]
    logger.exception("Unhandled error on %s %s (ref=%s)", request.method, request.url.path, reference)
    return _internal_error_response(reference)


# Routers
app.include_router(auth_router)
app.include_router(courses_router)
app.include_router(reviews_router)
app.include_router(billing_router)
app.include_router(premium_router)
app.include_router(webhooks_router)
app.include_router(admin_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
