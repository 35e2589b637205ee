"""
Base response schemas for standardized API responses.

These schemas keep list and mutation responses in one shape across
stations, bookings and payments.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaginatedResponse(BaseModel, Generic[T]):
    """Standard paginated response for all list endpoints."""

    items: List[T] = Field(description="List of items")
    total: int = Field(description="Total number of items")
    page: int = Field(default=1, description="Current page number", ge=1)
    per_page: int = Field(default=10, description="Items per page", ge=1, le=100)
    total_pages: int = Field(default=0, description="Number of pages", ge=0)
    has_next: bool = Field(description="Whether there's a next page")
    has_prev: bool = Field(description="Whether there's a previous page")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "items": ["..."],
                "total": 25,
                "page": 1,
                "per_page": 10,
                "total_pages": 3,
                "has_next": True,
                "has_prev": False,
            }
        }
    )

    @classmethod
    def build(
        cls, items: List[Any], *, total: int, page: int, per_page: int
    ) -> "PaginatedResponse[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            per_page=per_page,
            total_pages=(total + per_page - 1) // per_page,
            has_next=page * per_page < total,
            has_prev=page > 1,
        )


class SuccessResponse(BaseModel):
    """Standard success response for operations."""

    success: bool = Field(default=True, description="Operation success status")
    message: str = Field(description="Human-readable success message")
    data: Optional[Dict[str, Any]] = Field(default=None, description="Optional additional data")


class DeleteResponse(BaseModel):
    """Standard response for delete operations."""

    success: bool = Field(default=True, description="Deletion success status")
    message: str = Field(description="Human-readable deletion message")
    deleted_at: datetime = Field(default_factory=_utcnow, description="Deletion timestamp")
