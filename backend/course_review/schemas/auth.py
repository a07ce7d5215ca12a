"""Pydantic v2 request/response schemas for authentication endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Schema for student registration."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    display_name: str = Field(..., min_length=1, max_length=255)
    student_id: str | None = Field(None, max_length=50)
    admission_year: int | None = Field(None, ge=1950, le=2100)
    department: str | None = Field(None, max_length=100)
    faculty: str | None = Field(None, max_length=100)


class LoginRequest(BaseModel):
    """Schema for email/password login."""

    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    """Schema for token refresh."""

    refresh_token: str


class ProfileUpdateRequest(BaseModel):
    """Partial profile update. Later edits never change existing review attributions."""

    display_name: str | None = Field(None, min_length=1, max_length=255)
    avatar_url: str | None = Field(None, max_length=512)
    student_id: str | None = Field(None, max_length=50)
    admission_year: int | None = Field(None, ge=1950, le=2100)
    department: str | None = Field(None, max_length=100)
    faculty: str | None = Field(None, max_length=100)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """JWT token pair returned on successful authentication."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    """The authenticated user's own profile."""

    id: uuid.UUID
    email: str
    display_name: str
    avatar_url: str | None = None
    student_id: str | None = None
    admission_year: int | None = None
    department: str | None = None
    faculty: str | None = None
    is_premium: bool
    premium_expires_at: datetime | None = None
    is_admin: bool
    admin_role: str | None = None
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    """Combined user + tokens returned on register/login."""

    user: UserResponse
    tokens: TokenResponse
