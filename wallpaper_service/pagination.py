"""
Page/skip/limit pagination over an ordered collection.
"""
import math
from dataclasses import dataclass
from typing import Any, Generic, List, Optional, Sequence, TypeVar

T = TypeVar("T")

DEFAULT_PAGE = 1
DEFAULT_PAGE_LIMIT = 10


@dataclass
class Page(Generic[T]):
    items: List[T]
    page: int
    limit: int
    total_items: int
    total_pages: int


def coerce_page_param(value: Optional[Any], default: int) -> int:
    """
    Turns a raw query value into a positive integer.

    Non-numeric or missing values fall back to ``default``; anything below 1
    is raised to 1.

    Example:
        coerce_page_param("3", 1)   -> 3
        coerce_page_param("abc", 1) -> 1
        coerce_page_param("-4", 10) -> 1
    """
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        number = default
    return max(number, 1)


def paginate(items: Sequence[T], page: Optional[Any] = None, limit: Optional[Any] = None) -> Page[T]:
    """
    Slice one page out of ``items``.

    ``skip = (page - 1) * limit``. ``total_items`` is the size of the whole
    collection and ``total_pages`` is rounded up, so 25 items with a limit
    of 10 yields 3 pages. Pages past the end are empty.
    """
    page = coerce_page_param(page, DEFAULT_PAGE)
    limit = coerce_page_param(limit, DEFAULT_PAGE_LIMIT)
    skip = (page - 1) * limit
    total_items = len(items)
    return Page(
        items=list(items[skip : skip + limit]),
        page=page,
        limit=limit,
        total_items=total_items,
        total_pages=math.ceil(total_items / limit),
    )
