from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from labquote_api.core.errors import ValidationError

T = TypeVar("T")


@dataclass(slots=True)
class Page(Generic[T]):
    items: Sequence[T]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def validate_page_params(page: int, page_size: int, *, max_page_size: int) -> tuple[int, int]:
    """Reject non-positive or non-integer paging input; clamp oversized pages."""
    invalid = [
        name
        for name, value in (("page", page), ("page_size", page_size))
        if isinstance(value, bool) or not isinstance(value, int) or value < 1
    ]
    if invalid:
        raise ValidationError("Pagination parameters must be positive integers", invalid)
    return page, min(page_size, max_page_size)


__all__ = ["Page", "validate_page_params"]
