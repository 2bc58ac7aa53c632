from __future__ import annotations

import re
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence, TypeVar

from sales_analytics.models.sales import PipelineSnapshotRecord
from sales_analytics.schemas.sales import SalesFilters
from sales_analytics.shared.time import MONTH_LABELS, parse_local_date, quarter_label

if TYPE_CHECKING:
    from sales_analytics.analytics.opportunities import Opportunity

RENEWAL_BUCKET = "Extension/Renewal"
RENEWAL_LOGO_TYPES = frozenset({"Extension", "Renewal"})
LICENSE_ACV_LOGO_TYPES = frozenset({"New Logo", "Upsell", "Cross-Sell"})

T = TypeVar("T")


class RevenueType(str, Enum):
    LICENSE = "License"
    IMPLEMENTATION = "Implementation"
    ALL = "All"

    @classmethod
    def parse(cls, value: Optional[str], default: Optional["RevenueType"] = None) -> "RevenueType":
        fallback = default or cls.ALL
        if not value:
            return fallback
        try:
            return cls(value)
        except ValueError:
            return fallback


def split_value(license_value: float, implementation_value: float, revenue_type: RevenueType) -> float:
    if revenue_type is RevenueType.LICENSE:
        return license_value or 0.0
    if revenue_type is RevenueType.IMPLEMENTATION:
        return implementation_value or 0.0
    return (license_value or 0.0) + (implementation_value or 0.0)


def value(opportunity: "Opportunity", revenue_type: RevenueType) -> float:
    return split_value(opportunity.license_value, opportunity.implementation_value, revenue_type)


class Valuation:
    """Revenue-type-aware money getter shared by every aggregator."""

    def __init__(self, revenue_type: RevenueType) -> None:
        self.revenue_type = revenue_type

    @classmethod
    def for_filters(cls, filters: SalesFilters, default: RevenueType = RevenueType.ALL) -> "Valuation":
        return cls(RevenueType.parse(filters.revenue_type, default))

    def of(self, opportunity: "Opportunity") -> float:
        return value(opportunity, self.revenue_type)

    def of_amounts(self, license_value: float, implementation_value: float) -> float:
        return split_value(license_value, implementation_value, self.revenue_type)

    def unweighted(self, license_value: float, implementation_value: float, probability: float) -> float:
        # Snapshot values are already probability-weighted.
        if not probability or probability <= 0:
            return 0.0
        ratio = probability / 100
        return split_value(license_value / ratio, implementation_value / ratio, self.revenue_type)

    def unweighted_of(self, opportunity: "Opportunity") -> float:
        return self.unweighted(
            opportunity.license_value, opportunity.implementation_value, opportunity.probability
        )

    def total(self, opportunities: Iterable["Opportunity"]) -> float:
        return sum(self.of(opportunity) for opportunity in opportunities)


def logo_type_bucket(logo_type: str) -> str:
    return RENEWAL_BUCKET if logo_type in RENEWAL_LOGO_TYPES else logo_type


def logo_type_matches(logo_type: str, selected: Sequence[str]) -> bool:
    buckets = {logo_type_bucket(item) for item in selected}
    return logo_type_bucket(logo_type) in buckets or logo_type in selected


def _date_matches(filters: SalesFilters, close_date: Optional[date]) -> bool:
    if not (filters.year or filters.quarter or filters.month):
        return True
    if close_date is None:
        return False
    if filters.year and str(close_date.year) not in filters.year:
        return False
    if filters.quarter and quarter_label(close_date) not in filters.quarter:
        return False
    if filters.month and MONTH_LABELS[close_date.month - 1] not in filters.month:
        return False
    return True


def matches_fields(
    filters: SalesFilters,
    close_date: Optional[date],
    region: str,
    vertical: str,
    segment: str,
    logo_type: str,
    sold_by: Optional[str] = None,
    product_category: Optional[str] = None,
    product_sub_category: Optional[str] = None,
) -> bool:
    """AND across every populated dimension; ``None`` attributes are not checked."""
    if filters.region and region not in filters.region:
        return False
    if filters.vertical and vertical not in filters.vertical:
        return False
    if filters.segment and segment not in filters.segment:
        return False
    if filters.logo_type and not logo_type_matches(logo_type, filters.logo_type):
        return False
    if not _date_matches(filters, close_date):
        return False
    if sold_by is not None and filters.sold_by and filters.sold_by != "All" and sold_by != filters.sold_by:
        return False
    if product_category and filters.product_category and product_category not in filters.product_category:
        return False
    if (
        product_sub_category
        and filters.product_sub_category
        and product_sub_category not in filters.product_sub_category
    ):
        return False
    return True


def matches(opportunity: "Opportunity", filters: SalesFilters) -> bool:
    return matches_fields(
        filters,
        close_date=opportunity.expected_close_date,
        region=opportunity.region,
        vertical=opportunity.vertical,
        segment=opportunity.segment,
        logo_type=opportunity.logo_type,
        sold_by=opportunity.sold_by,
        product_category=opportunity.product_category,
        product_sub_category=opportunity.product_sub_category,
    )


def matches_snapshot(row: PipelineSnapshotRecord, filters: SalesFilters, with_dates: bool = True) -> bool:
    return matches_fields(
        filters if with_dates else without_dates(filters),
        close_date=parse_local_date(row.expected_close_date),
        region=row.region,
        vertical=row.vertical,
        segment=row.segment,
        logo_type=row.logo_type,
    )


def filter_opportunities(
    opportunities: Iterable["Opportunity"], filters: SalesFilters
) -> List["Opportunity"]:
    return [opportunity for opportunity in opportunities if matches(opportunity, filters)]


def without_dates(filters: SalesFilters) -> SalesFilters:
    return filters.model_copy(update={"year": None, "quarter": None, "month": None})


def selected_years(filters: SalesFilters) -> List[int]:
    years: List[int] = []
    for raw in filters.year or []:
        text = raw.strip()
        if text.isdigit() and int(text) not in years:
            years.append(int(text))
    return years


def previous_year(filters: SalesFilters, current_year: int) -> SalesFilters:
    years = selected_years(filters) or [current_year]
    return filters.model_copy(update={"year": [str(year - 1) for year in years]})


def reporting_year(filters: SalesFilters, today: date) -> int:
    """The latest selected year, or the year of ``today`` when none is selected."""
    years = selected_years(filters)
    return max(years) if years else today.year


def is_renewal(opportunity: "Opportunity") -> bool:
    return opportunity.logo_type in RENEWAL_LOGO_TYPES


def _snake_case(name: str) -> str:
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", name).lower()


def sort_by_field(items: List[T], field: Optional[str], direction: str = "desc") -> List[T]:
    """Sort response rows by one of their attributes; unknown fields keep the order."""
    if not field or not items:
        return items
    attribute = _snake_case(field)
    if not hasattr(items[0], attribute):
        return items

    def sort_key(item: T):
        current = getattr(item, attribute)
        if current is None:
            return (1, "")
        if isinstance(current, str):
            return (0, current.lower())
        return (0, current)

    return sorted(items, key=sort_key, reverse=direction != "asc")
