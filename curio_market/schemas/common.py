"""Envelope schemas shared by many endpoints."""

from typing import Generic, List, TypeVar, Union
from pydantic import BaseModel, Field

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """One page of a catalog or admin listing query."""
    items: List[T]
    total: int
    page: int = Field(ge=1)
    per_page: int = Field(ge=1, le=100)
    has_more: bool

    @classmethod
    def create(
        cls,
        items: List[T],
        total: int,
        page: int,
        per_page: int
    ) -> "PaginatedResponse[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            per_page=per_page,
            has_more=(page * per_page) < total
        )


class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    """Every error body. Validation failures carry one entry per field."""
    error: Union[str, List[FieldError]]


ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Bad request or invalid fields"},
    401: {"model": ErrorResponse, "description": "Not signed in"},
    403: {"model": ErrorResponse, "description": "Forbidden or account suspended"},
    404: {"model": ErrorResponse, "description": "Not found"},
    409: {"model": ErrorResponse, "description": "Conflicts with current state"},
}
