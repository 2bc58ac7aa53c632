from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query

from sales_analytics.api.dependencies import get_sales_analytics_service
from sales_analytics.schemas.sales import (
    AttainmentHeatmapResponse,
    ClosedDeal,
    DealDetail,
    DealsFilters,
    ForecastSimulation,
    ForecastTrendResponse,
    FunnelResponse,
    KeyDealsResponse,
    MovementFilters,
    OverviewMetrics,
    PipelineMovementResponse,
    PipelineSubCategoryResponse,
    QuarterlyForecastResponse,
    QuotaFilters,
    RegionalForecastResponse,
    SalesFilters,
    SalespeopleResponse,
    SimulationFilters,
    SubCategoryForecastResponse,
)
from sales_analytics.services.sales_analytics_service import SalesAnalyticsService
from sales_analytics.shared.response import Meta, ResponseEnvelope, build_meta

router = APIRouter(prefix="/sales", tags=["sales"])

OPPORTUNITY_SOURCES = "closed_acv,pipeline_snapshots,sow_mappings,arr_subcategory_breakdown,product_category_mappings"


def get_sales_filters(
    year: list[str] | None = Query(default=None),
    quarter: list[str] | None = Query(default=None),
    month: list[str] | None = Query(default=None),
    region: list[str] | None = Query(default=None),
    vertical: list[str] | None = Query(default=None),
    segment: list[str] | None = Query(default=None),
    logo_type: list[str] | None = Query(default=None),
    product_category: list[str] | None = Query(default=None),
    product_sub_category: list[str] | None = Query(default=None),
    sold_by: str | None = Query(default=None, pattern="^(All|Sales|GD|TSO)$"),
    revenue_type: str | None = Query(default=None, pattern="^(License|Implementation|All)$"),
) -> SalesFilters:
    return SalesFilters(
        year=year,
        quarter=quarter,
        month=month,
        region=region,
        vertical=vertical,
        segment=segment,
        logo_type=logo_type,
        product_category=product_category,
        product_sub_category=product_sub_category,
        sold_by=sold_by,
        revenue_type=revenue_type,
    )


def get_deals_filters(
    filters: SalesFilters = Depends(get_sales_filters),
    sort_field: str | None = Query(default=None),
    sort_direction: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=10, ge=1, le=500),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
) -> DealsFilters:
    return DealsFilters(
        **filters.model_dump(),
        sort_field=sort_field,
        sort_direction=sort_direction,
        limit=limit,
        page=page,
        page_size=page_size,
    )


def get_movement_filters(
    filters: SalesFilters = Depends(get_sales_filters),
    target_month: str | None = Query(default=None, pattern=r"^\d{4}-\d{2}$"),
    lookback_months: int = Query(default=1, ge=1, le=24),
) -> MovementFilters:
    return MovementFilters(
        **filters.model_dump(), target_month=target_month, lookback_months=lookback_months
    )


def get_quota_filters(
    filters: SalesFilters = Depends(get_sales_filters),
    name_filter: str | None = Query(default=None),
    region_filter: str | None = Query(default=None),
    sort_field: str | None = Query(default=None),
    sort_direction: str = Query(default="desc", pattern="^(asc|desc)$"),
) -> QuotaFilters:
    return QuotaFilters(
        **filters.model_dump(),
        name_filter=name_filter,
        region_filter=region_filter,
        sort_field=sort_field,
        sort_direction=sort_direction,
    )


def get_simulation_filters(
    filters: SalesFilters = Depends(get_sales_filters),
    iterations: int | None = Query(default=None, ge=100, le=20000),
    seed: int | None = Query(default=None),
) -> SimulationFilters:
    return SimulationFilters(**filters.model_dump(), iterations=iterations, seed=seed)


def _meta(
    filters: SalesFilters, service: SalesAnalyticsService, source: str = OPPORTUNITY_SOURCES
) -> Meta:
    return build_meta(
        source=source,
        time_window=",".join(filters.year) if filters.year else "all",
        reporting_date=service.today,
        filters_applied=filters.dimensions_applied(),
    )


@router.get("/overview/metrics")
def sales_overview_metrics(
    filters: SalesFilters = Depends(get_sales_filters),
    service: SalesAnalyticsService = Depends(get_sales_analytics_service),
) -> ResponseEnvelope[OverviewMetrics]:
    data = service.get_overview_metrics(filters)
    return ResponseEnvelope(data=data, pagination=None, meta=_meta(filters, service))


@router.get("/overview/funnel")
def sales_overview_funnel(
    filters: SalesFilters = Depends(get_sales_filters),
    service: SalesAnalyticsService = Depends(get_sales_analytics_service),
) -> ResponseEnvelope[FunnelResponse]:
    data = service.get_funnel(filters)
    return ResponseEnvelope(data=data, pagination=None, meta=_meta(filters, service))


@router.get("/overview/key-deals")
def sales_overview_key_deals(
    filters: DealsFilters = Depends(get_deals_filters),
    service: SalesAnalyticsService = Depends(get_sales_analytics_service),
) -> ResponseEnvelope[KeyDealsResponse]:
    data = service.get_key_deals(filters)
    return ResponseEnvelope(data=data, pagination=None, meta=_meta(filters, service))


@router.get("/overview/closed-deals")
def sales_overview_closed_deals(
    filters: DealsFilters = Depends(get_deals_filters),
    service: SalesAnalyticsService = Depends(get_sales_analytics_service),
) -> ResponseEnvelope[List[ClosedDeal]]:
    data, pagination = service.list_closed_deals(filters)
    return ResponseEnvelope(data=data, pagination=pagination, meta=_meta(filters, service))


@router.get("/deals/{deal_id}")
def sales_deal_detail(
    deal_id: str,
    service: SalesAnalyticsService = Depends(get_sales_analytics_service),
) -> ResponseEnvelope[DealDetail]:
    data = service.get_deal(deal_id)
    meta = build_meta(source=OPPORTUNITY_SOURCES, time_window="latest", reporting_date=service.today)
    return ResponseEnvelope(data=data, pagination=None, meta=meta)


@router.get("/forecast/quarterly")
def sales_forecast_quarterly(
    filters: SalesFilters = Depends(get_sales_filters),
    service: SalesAnalyticsService = Depends(get_sales_analytics_service),
) -> ResponseEnvelope[QuarterlyForecastResponse]:
    data = service.get_quarterly_forecast(filters)
    return ResponseEnvelope(data=data, pagination=None, meta=_meta(filters, service))


@router.get("/forecast/regional")
def sales_forecast_regional(
    filters: SalesFilters = Depends(get_sales_filters),
    service: SalesAnalyticsService = Depends(get_sales_analytics_service),
) -> ResponseEnvelope[RegionalForecastResponse]:
    data = service.get_regional_forecast(filters)
    return ResponseEnvelope(data=data, pagination=None, meta=_meta(filters, service))


@router.get("/forecast/trend")
def sales_forecast_trend(
    filters: SalesFilters = Depends(get_sales_filters),
    service: SalesAnalyticsService = Depends(get_sales_analytics_service),
) -> ResponseEnvelope[ForecastTrendResponse]:
    data = service.get_forecast_trend(filters)
    return ResponseEnvelope(data=data, pagination=None, meta=_meta(filters, service))


@router.get("/forecast/by-subcategory")
def sales_forecast_by_subcategory(
    filters: SalesFilters = Depends(get_sales_filters),
    service: SalesAnalyticsService = Depends(get_sales_analytics_service),
) -> ResponseEnvelope[SubCategoryForecastResponse]:
    data = service.get_forecast_by_subcategory(filters)
    return ResponseEnvelope(data=data, pagination=None, meta=_meta(filters, service))


@router.get("/forecast/simulation")
def sales_forecast_simulation(
    filters: SimulationFilters = Depends(get_simulation_filters),
    service: SalesAnalyticsService = Depends(get_sales_analytics_service),
) -> ResponseEnvelope[ForecastSimulation]:
    data = service.get_forecast_simulation(filters)
    return ResponseEnvelope(data=data, pagination=None, meta=_meta(filters, service))


@router.get("/pipeline/movement")
def sales_pipeline_movement(
    filters: MovementFilters = Depends(get_movement_filters),
    service: SalesAnalyticsService = Depends(get_sales_analytics_service),
) -> ResponseEnvelope[PipelineMovementResponse]:
    data = service.get_pipeline_movement(filters)
    meta = build_meta(
        source="pipeline_snapshots",
        time_window=f"{filters.lookback_months}m",
        reporting_date=service.today,
        filters_applied=filters.dimensions_applied(),
    )
    return ResponseEnvelope(data=data, pagination=None, meta=meta)


@router.get("/pipeline/by-subcategory")
def sales_pipeline_by_subcategory(
    filters: SalesFilters = Depends(get_sales_filters),
    service: SalesAnalyticsService = Depends(get_sales_analytics_service),
) -> ResponseEnvelope[PipelineSubCategoryResponse]:
    data = service.get_pipeline_by_subcategory(filters)
    return ResponseEnvelope(data=data, pagination=None, meta=_meta(filters, service))


@router.get("/quota/salespeople")
def sales_quota_salespeople(
    filters: QuotaFilters = Depends(get_quota_filters),
    service: SalesAnalyticsService = Depends(get_sales_analytics_service),
) -> ResponseEnvelope[SalespeopleResponse]:
    data = service.get_salespeople(filters)
    source = f"sales_team,sales_performance_history,{OPPORTUNITY_SOURCES}"
    return ResponseEnvelope(data=data, pagination=None, meta=_meta(filters, service, source))


@router.get("/quota/heatmap")
def sales_quota_heatmap(
    filters: QuotaFilters = Depends(get_quota_filters),
    service: SalesAnalyticsService = Depends(get_sales_analytics_service),
) -> ResponseEnvelope[AttainmentHeatmapResponse]:
    data = service.get_attainment_heatmap(filters)
    source = f"sales_team,sales_performance_history,{OPPORTUNITY_SOURCES}"
    return ResponseEnvelope(data=data, pagination=None, meta=_meta(filters, service, source))
