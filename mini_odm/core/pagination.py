"""Paginated query results."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Generic, Sequence, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of records plus the totals it was cut from."""

    content: list[T]
    total_elements: int
    total_pages: int
    current_page: int
    page_size: int
    has_next: bool
    has_previous: bool

    @classmethod
    def build(
        cls,
        content: Sequence[T],
        *,
        total_elements: int,
        page: int,
        size: int,
    ) -> Page[T]:
        """Derive page totals; `size` must be positive."""

        validate_page_request(page, size)
        total_pages = math.ceil(total_elements / size)
        return cls(
            content=list(content),
            total_elements=total_elements,
            total_pages=total_pages,
            current_page=page,
            page_size=size,
            has_next=page < total_pages - 1,
            has_previous=page > 0,
        )


def validate_page_request(page: int, size: int) -> None:
    if size <= 0:
        raise ValueError("page size must be > 0")
    if page < 0:
        raise ValueError("page must be >= 0")
