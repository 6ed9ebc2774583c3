"""
Mimi's Kitchen API - Shared Schema Base
========================================
Request/response bodies use camelCase on the wire and snake_case in Python.
"""

from typing import Generic, List, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Pagination(CamelModel):
    total: int
    page: int
    pages: int
    has_more: bool


class Page(CamelModel, Generic[T]):
    items: List[T]
    pagination: Pagination


def build_pagination(total: int, page: int, limit: int) -> Pagination:
    pages = (total + limit - 1) // limit if limit else 0
    return Pagination(total=total, page=page, pages=pages, has_more=page < pages)
