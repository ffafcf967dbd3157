from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """A newest-first page; pass ``next_cursor`` back to continue, ``None`` on the last page."""

    items: list[T]  # type: ignore[type-var]
    next_cursor: str | None = None
