from typing import Generic, Optional, TypeVar

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base schema: snake_case in Python, camelCase on the wire."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class ApiResponse(BaseModel, Generic[T]):
    """Response envelope shared by every endpoint."""
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


class Pagination(CamelModel):
    """Pagination block for list endpoints"""
    page: int
    limit: int
    total: int
    total_pages: int
