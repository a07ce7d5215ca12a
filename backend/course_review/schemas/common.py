"""Shared response schemas."""

from pydantic import BaseModel


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str


class PageMeta(BaseModel):
    """Offset pagination metadata shared by list responses."""

    total: int
    page: int
    limit: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "PageMeta":
        return cls(
            total=total,
            page=page,
            limit=limit,
            has_next=total > page * limit,
            has_prev=page > 1,
        )
