"""Shared response shapes: the `{message, data}` envelope and pagination.

Learn: the JSON API speaks camelCase (fullName, companyId, hasNext) while
Python code stays snake_case. APIModel's alias generator bridges the two;
FastAPI serializes response models by alias, and populate_by_name lets
requests use either spelling.
"""

import math
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class APIModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Envelope(BaseModel, Generic[T]):
    """Uniform success body."""
    message: str
    data: Optional[T] = None


class PageParams(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class Pagination(APIModel):
    page: int
    limit: int
    total_count: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total_count: int) -> "Pagination":
        total_pages = math.ceil(total_count / limit) if limit else 0
        return cls(
            page=page,
            limit=limit,
            total_count=total_count,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class CompanyBrief(APIModel):
    id: int
    title: str


class PersonBrief(APIModel):
    id: int
    full_name: str
    email: str
