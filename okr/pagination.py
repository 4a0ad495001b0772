from __future__ import annotations

from collections.abc import Sequence
from typing import Any, TypeVar

from typing_extensions import TypedDict

T = TypeVar("T")

__all__ = [
    "PageRequest",
    "PageMeta",
    "parse_page_params",
    "paginate_query",
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
DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def parse_page_params(args: dict[str, str | None]) -> PageRequest:
    """Parse & validate `page`/`limit` query params from a dict-like (e.g. request.args).

    Applies defaults and caps limit to MAX_LIMIT.
    """
    page_raw = args.get("page")
    limit_raw = args.get("limit")
    try:
        page = int(page_raw) if page_raw else DEFAULT_PAGE
    except ValueError as e:
        raise PaginationError("invalid page parameter") from e
    try:
        limit = int(limit_raw) if limit_raw else DEFAULT_LIMIT
    except ValueError as e:
        raise PaginationError("invalid limit parameter") from e
    if page < 1:
        raise PaginationError("page must be >= 1")
    if limit < 1:
        raise PaginationError("limit must be >= 1")
    return PageRequest(page=page, limit=min(limit, MAX_LIMIT))


def make_page_response(items: Sequence[T], page_req: PageRequest, total: int) -> dict[str, Any]:
    pages = (total + page_req["limit"] - 1) // page_req["limit"]
    return {
        "data": list(items),
        "meta": PageMeta(page=page_req["page"], limit=page_req["limit"], total=total, pages=pages),
    }


def paginate_query(q, page_req: PageRequest):  # type: ignore[no-untyped-def]
    """Return (rows, total) for a SQLAlchemy query already carrying its ordering."""
    total = q.count()
    start = (page_req["page"] - 1) * page_req["limit"]
    return q.offset(start).limit(page_req["limit"]).all(), total
