"""
Pagination helpers for list operations.
"""

from dataclasses import dataclass
from typing import Optional

from core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


@dataclass(frozen=True)
class PageRequest:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def normalize_pagination(page: Optional[int], limit: Optional[int]) -> PageRequest:
    """
    Clamp raw page/limit values.

    Non-positive or missing page becomes 1; non-positive or missing limit
    becomes DEFAULT_PAGE_SIZE; limit is capped at MAX_PAGE_SIZE.
    """
    normalized_page = page if page and page > 0 else 1
    normalized_limit = min(limit, MAX_PAGE_SIZE) if limit and limit > 0 else DEFAULT_PAGE_SIZE
    return PageRequest(page=normalized_page, limit=normalized_limit)
