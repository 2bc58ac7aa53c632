from __future__ import annotations

from datetime import date, datetime, timezone
from math import ceil
from typing import Generic, List, Optional, Sequence, TypeVar

from sales_analytics.shared.base import BaseSchema


T = TypeVar("T")

CALCULATION_VERSION = "v1"


class Pagination(BaseSchema):
    page: int
    page_size: int
    total_items: int
    total_pages: int


class Meta(BaseSchema):
    as_of_date: str
    source: str
    time_window: str
    calculation_version: str = CALCULATION_VERSION
    reporting_date: Optional[str] = None
    filters_applied: List[str] = []
    generated_at: Optional[str] = None


class ResponseEnvelope(BaseSchema, Generic[T]):
    data: T
    pagination: Optional[Pagination] = None
    meta: Optional[Meta] = None


def build_meta(
    source: str,
    time_window: str,
    reporting_date: Optional[date] = None,
    filters_applied: Optional[List[str]] = None,
) -> Meta:
    """Every figure is recomputed per request, so ``generated_at`` is the read time."""
    return Meta(
        as_of_date=date.today().isoformat(),
        source=source,
        time_window=time_window,
        reporting_date=reporting_date.isoformat() if reporting_date else None,
        filters_applied=filters_applied or [],
        generated_at=datetime.now(timezone.utc).isoformat(),
    )


def build_pagination(page: int, page_size: int, total_items: int) -> Pagination:
    total_pages = ceil(total_items / page_size) if page_size else 0
    return Pagination(
        page=page,
        page_size=page_size,
        total_items=total_items,
        total_pages=total_pages,
    )


def paginate_list(items: Sequence[T], page: int, page_size: int) -> tuple[list[T], Pagination]:
    pagination = build_pagination(page, page_size, len(items))
    start_index = (page - 1) * page_size
    return list(items[start_index : start_index + page_size]), pagination
