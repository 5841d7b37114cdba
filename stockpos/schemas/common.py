from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: T | None = None
    message: str | None = None


class PaginationMeta(BaseModel):
    total: int
    limit: int
    offset: int
    count: int
    has_next: bool

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "total": 42,
                "limit": 10,
                "offset": 0,
                "count": 10,
                "has_next": True,
            }
        }
    )


class Page(BaseModel, Generic[T]):
    items: list[T]
    pagination: PaginationMeta


def page_meta(*, total: int, limit: int, offset: int, count: int) -> PaginationMeta:
    return PaginationMeta(
        total=total,
        limit=limit,
        offset=offset,
        count=count,
        has_next=(offset + count) < total,
    )


class ErrorOut(BaseModel):
    success: bool = False
    message: str
    error: str
    request_id: str
    path: str
    details: list[dict[str, Any]] | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": False,
                "message": "Insufficient stock for Tomate. Available: 3.000, requested: 5.000",
                "error": "insufficient_stock",
                "request_id": "8d8f2b00-6c79-4a45-8ff4-b0a5f2bc4bc2",
                "path": "/sales",
                "details": [{"product_id": 1, "available": 3.0, "requested": 5.0}],
            }
        }
    )
