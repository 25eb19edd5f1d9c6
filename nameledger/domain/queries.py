from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import math
from typing import Generic, Sequence, TypeVar


T = TypeVar("T")


@dataclass
class GeneratedNameFilter:
    # Empty strings and None both mean "no predicate" for a field.
    user: str | None = None
    resource_type: str | None = None
    resource_name: str | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    ip_address: str | None = None
    search_term: str | None = None
    component_name: str | None = None
    component_value: str | None = None
    include_deleted: bool = False

    @property
    def has_filters(self) -> bool:
        return bool(
            self.user
            or self.resource_type
            or self.resource_name
            or self.from_date is not None
            or self.to_date is not None
            or self.ip_address
            or self.search_term
            or self.component_name
            or self.component_value
            or self.include_deleted
        )


@dataclass(frozen=True)
class PagedResult(Generic[T]):
    items: Sequence[T]
    total_count: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total_count / self.page_size)

    @property
    def has_previous_page(self) -> bool:
        return self.page > 1

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def start_item(self) -> int:
        if self.total_count == 0:
            return 0
        return (self.page - 1) * self.page_size + 1

    @property
    def end_item(self) -> int:
        return min(self.page * self.page_size, self.total_count)


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    page_size: int = 50

    def __post_init__(self) -> None:
        if self.page_size < 1:
            raise ValueError("page_size must be at least 1")
        if self.page < 1:
            object.__setattr__(self, "page", 1)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size
