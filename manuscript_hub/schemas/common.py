"""
Envelopes shared by every router: error bodies, plain acknowledgements,
pagination and the health check.
"""

from typing import Any, Dict, Generic, List, Optional, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


class ErrorResponse(BaseModel):
    """Body of every non-2xx response."""

    detail: Any
    code: Optional[str] = None
    context: Optional[Dict[str, str]] = None
    errors: Optional[List[Dict[str, Any]]] = None
    request_id: Optional[str] = None

    def body(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class SuccessResponse(BaseModel):
    """Acknowledgement for operations with nothing else to return."""

    message: str
    data: Optional[Any] = None


class PaginatedResponse(BaseModel, Generic[T]):
    """One page of a larger ordered result."""

    items: List[T]
    total: int
    page: int = 1
    page_size: int = 20
    has_more: bool = False

    @classmethod
    def create(
        cls,
        items: List[T],
        total: int,
        page: int = 1,
        page_size: int = 20,
        **extra: Any,
    ):
        """Build a page; subclasses pass their additional totals through ``extra``."""
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            has_more=page * page_size < total,
            **extra,
        )


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    database: str = "connected"
