"""
Response envelope shared by the review endpoints.

Successful calls carry ``data`` with an empty ``errors`` list; failures carry
``errors`` and no ``data``. Provenance of review data (upstream, mock or
database) and the cache outcome travel in ``meta``.
"""

from typing import TypeVar, Generic, Optional, List, Dict, Any
from pydantic import BaseModel, Field
from datetime import datetime, timezone


T = TypeVar("T")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class ResponseMeta(BaseModel):
    timestamp: datetime = Field(default_factory=_now)
    request_id: Optional[str] = None
    source: Optional[str] = Field(None, description="upstream, mock or database")
    cache_status: Optional[str] = Field(None, description="HIT, MISS or BYPASS")
    pagination: Optional[PaginationMeta] = None


class ErrorDetail(BaseModel):
    code: str
    message: str
    field: Optional[str] = Field(None, description="Offending request parameter, if any")


class StandardResponse(BaseModel, Generic[T]):
    """
    Envelope returned by every review route.

        return StandardResponse.success(data=review, meta={"source": "mock"})
        return StandardResponse.error(message="Review 7 not found", code="NOT_FOUND")
    """
    success: bool
    data: Optional[T] = None
    meta: ResponseMeta = Field(default_factory=ResponseMeta)
    errors: List[ErrorDetail] = Field(default_factory=list)
    message: Optional[str] = None

    @staticmethod
    def _meta(
        values: Optional[Dict[str, Any]], pagination: Optional[PaginationMeta] = None
    ) -> ResponseMeta:
        known = {k: v for k, v in (values or {}).items() if k in ResponseMeta.model_fields}
        if pagination is not None:
            known["pagination"] = pagination
        return ResponseMeta(**known)

    @classmethod
    def success(
        cls,
        data: Optional[T] = None,
        message: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        pagination: Optional[PaginationMeta] = None,
    ) -> "StandardResponse[T]":
        return cls(success=True, data=data, meta=cls._meta(meta, pagination), message=message)

    @classmethod
    def error(
        cls,
        message: str,
        code: str = "ERROR",
        errors: Optional[List[ErrorDetail]] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> "StandardResponse[None]":
        return cls(
            success=False,
            meta=cls._meta(meta),
            errors=errors or [ErrorDetail(code=code, message=message)],
            message=message,
        )
