from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import Field

from sales_analytics.shared.base import BaseSchema, QuerySchema


class SalesFilters(QuerySchema):
    year: Optional[List[str]] = None
    quarter: Optional[List[str]] = None
    month: Optional[List[str]] = None
    region: Optional[List[str]] = None
    vertical: Optional[List[str]] = None
    segment: Optional[List[str]] = None
    logo_type: Optional[List[str]] = None
    product_category: Optional[List[str]] = None
    product_sub_category: Optional[List[str]] = None
    sold_by: Optional[str] = Field(default=None, pattern="^(All|Sales|GD|TSO)$")
    revenue_type: Optional[str] = Field(default=None, pattern="^(License|Implementation|All)$")

    def dimensions_applied(self) -> List[str]:
        return [name for name in self.populated_fields() if name in SalesFilters.model_fields]


class DealsFilters(SalesFilters):
    sort_field: Optional[str] = None
    sort_direction: str = Field(default="desc", pattern="^(asc|desc)$")
    limit: int = Field(default=10, ge=1, le=500)
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=50, ge=1, le=500)


class MovementFilters(SalesFilters):
    target_month: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{2}$")
    lookback_months: int = Field(default=1, ge=1, le=24)


class QuotaFilters(SalesFilters):
    name_filter: Optional[str] = None
    region_filter: Optional[str] = None
    sort_field: Optional[str] = None
    sort_direction: str = Field(default="desc", pattern="^(asc|desc)$")


class SimulationFilters(SalesFilters):
    iterations: Optional[int] = Field(default=None, ge=100, le=20000)
    seed: Optional[int] = None


class OverviewMetrics(BaseSchema):
    total_closed_acv: int
    forecast_acv: int
    weighted_pipeline_acv: int
    previous_year_closed_acv: int
    previous_year_forecast_acv: int
    yoy_growth: float
    conversion_rate: float
    avg_deal_size: int
    avg_sales_cycle: int
    closed_won_count: int
    closed_lost_count: int
    active_deals_count: int
    new_business_license_acv: int
    implementation_acv: int
    extension_renewal_license: int
    total_pipeline_value: int


class FunnelStage(BaseSchema):
    stage: str
    count: int
    value: int


class FunnelResponse(BaseSchema):
    stages: List[FunnelStage]


class KeyDeal(BaseSchema):
    id: str
    name: str
    account_name: str
    region: str
    vertical: str
    stage: str
    probability: float
    deal_value: int
    unweighted_value: int
    unweighted_license_value: int
    unweighted_implementation_value: int
    license_value: int
    implementation_value: int
    expected_close_date: Optional[date] = None
    logo_type: str
    owner: str
    product_sub_category: str
    product_category: str


class KeyDealsResponse(BaseSchema):
    deals: List[KeyDeal]


class SubCategoryShareSummary(BaseSchema):
    sub_category: str
    category: str
    pct: float
    value: int


class ClosedDeal(BaseSchema):
    id: str
    name: str
    account_name: str
    logo_type: str
    license_value: int
    implementation_value: int
    closed_acv: int
    close_date: Optional[date] = None
    region: str
    vertical: str
    segment: str
    sold_by: str
    sow_id: Optional[str] = None
    subcategory_breakdown: List[SubCategoryShareSummary] = Field(default_factory=list)


class DealDetail(BaseSchema):
    id: str
    name: str
    account_name: str
    region: str
    vertical: str
    segment: str
    stage: str
    status: str
    probability: float
    deal_value: int
    license_value: int
    implementation_value: int
    weighted_value: int
    closed_acv: int
    expected_close_date: Optional[date] = None
    owner: str
    logo_type: str
    sold_by: str
    sow_id: Optional[str] = None
    revenue_type: str
    product_sub_category: str
    product_category: str
    subcategory_breakdown: List[SubCategoryShareSummary] = Field(default_factory=list)


class QuarterlyForecastPoint(BaseSchema):
    quarter: str
    forecast: int
    actual: int
    weighted_pipeline: int
    previous_year: int
    variance: int
    yoy_growth: float


class QuarterlyForecastResponse(BaseSchema):
    year: int
    quarters: List[QuarterlyForecastPoint]


class RegionalForecastRow(BaseSchema):
    region: str
    forecast: int
    previous_year_acv: int
    closed_acv: int
    variance: int
    yoy_growth: float


class RegionalForecastResponse(BaseSchema):
    year: int
    regions: List[RegionalForecastRow]


class ForecastTrendPoint(BaseSchema):
    month: str
    cumulative_forecast: int
    cumulative_previous_year: int
    monthly_won: int
    monthly_pipeline: int
    variance: int
    yoy_growth: float


class ForecastTrendResponse(BaseSchema):
    year: int
    months: List[ForecastTrendPoint]


class SubCategoryForecastRow(BaseSchema):
    sub_category: str
    category: str
    weighted_forecast: int
    percent_of_total: float
    deal_count: int


class SubCategoryForecastResponse(BaseSchema):
    subcategories: List[SubCategoryForecastRow]


class PipelineSubCategoryRow(BaseSchema):
    sub_category: str
    category: str
    pipeline_value: int
    weighted_value: int
    deal_count: int


class PipelineSubCategoryResponse(BaseSchema):
    subcategories: List[PipelineSubCategoryRow]


class ForecastSimulation(BaseSchema):
    iterations: int
    deal_count: int
    closed_acv: int
    expected_pipeline: int
    mean: int
    median: int
    std_dev: int
    p10: int
    p25: int
    p75: int
    p90: int


class MovementBucket(BaseSchema):
    count: int = 0
    value: int = 0


class MovementDealDetail(BaseSchema):
    deal_id: str
    deal_name: str
    account_name: str
    category: str
    previous_value: int
    current_value: int
    change: int
    stage: str


class WaterfallStep(BaseSchema):
    name: str
    bottom: int
    value: int
    display_value: int
    step_type: str


class PipelineMovementResponse(BaseSchema):
    prev_label: str = ""
    curr_label: str = ""
    previous_month: Optional[str] = None
    target_month: Optional[str] = None
    starting_pipeline: int = 0
    ending_pipeline: int = 0
    new_deals: MovementBucket = Field(default_factory=MovementBucket)
    increased: MovementBucket = Field(default_factory=MovementBucket)
    decreased: MovementBucket = Field(default_factory=MovementBucket)
    won: MovementBucket = Field(default_factory=MovementBucket)
    lost: MovementBucket = Field(default_factory=MovementBucket)
    total_change: int = 0
    waterfall: List[WaterfallStep] = Field(default_factory=list)
    deal_details: List[MovementDealDetail] = Field(default_factory=list)


class SalespersonRow(BaseSchema):
    id: str
    name: str
    region: str
    is_manager: bool
    level: int
    manager_id: Optional[str] = None
    quota: int
    closed_ytd: int
    previous_year_closed: int
    pipeline_value: int
    unweighted_pipeline: int
    forecast: int
    pipeline_coverage: float
    forecast_attainment: float
    monthly_attainment: List[int]


class SalespeopleResponse(BaseSchema):
    year: int
    mode: str
    salespeople: List[SalespersonRow]


class HeatmapCell(BaseSchema):
    month: str
    attainment_pct: int
    color: str


class HeatmapRow(BaseSchema):
    id: str
    name: str
    region: str
    is_manager: bool
    level: int
    months: List[HeatmapCell]
    avg_attainment: int


class AttainmentHeatmapResponse(BaseSchema):
    year: int
    month_labels: List[str]
    rows: List[HeatmapRow]
