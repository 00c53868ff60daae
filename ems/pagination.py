from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, TypedDict, TypeVar

T = TypeVar("T")

__all__ = [
    "PageRequest",
    "PageMeta",
    "parse_page_params",
    "make_page_response",
    "PaginationError",
]


class PageRequest(TypedDict):
    page: int  # 1-based
    limit: int


class PageMeta(TypedDict):
    page: int
    limit: int
    total: int
    pages: int


class PaginationError(ValueError):
    """Raised when pagination query params are invalid."""


DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def parse_page_params(args: Mapping[str, str | None]) -> PageRequest:
    """Parse & validate ``page``/``limit`` from a dict-like (e.g. request.args).

    Applies defaults and caps limit to MAX_LIMIT.
    """
    page_raw = args.get("page")
    limit_raw = args.get("limit")
    try:
        page = int(page_raw) if page_raw else DEFAULT_PAGE
    except ValueError as e:
        raise PaginationError("Page must be a positive integer") from e
    try:
        limit = int(limit_raw) if limit_raw else DEFAULT_LIMIT
    except ValueError as e:
        raise PaginationError("Limit must be a positive integer") from e
    if page < 1:
        raise PaginationError("Page must be a positive integer")
    if limit < 1:
        raise PaginationError("Limit must be a positive integer")
    if limit > MAX_LIMIT:
        limit = MAX_LIMIT
    return PageRequest(page=page, limit=limit)


def offset_of(page_req: PageRequest) -> int:
    return (page_req["page"] - 1) * page_req["limit"]


def make_page_response(items: Sequence[T], page_req: PageRequest, total: int) -> dict[str, Any]:
    pages = (total + page_req["limit"] - 1) // page_req["limit"] if page_req["limit"] else 0
    return {
        "success": True,
        "data": list(items),
        "pagination": PageMeta(page=page_req["page"], limit=page_req["limit"], total=total, pages=pages),
    }
