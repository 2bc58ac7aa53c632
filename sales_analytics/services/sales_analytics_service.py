from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional, Tuple

from sales_analytics.analytics.forecast import (
    compute_forecast_by_subcategory,
    compute_forecast_trend,
    compute_pipeline_by_subcategory,
    compute_quarterly_forecast,
    compute_regional_forecast,
    simulate_forecast,
)
from sales_analytics.analytics.kpis import (
    compute_closed_deals,
    compute_funnel,
    compute_key_deals,
    compute_overview_metrics,
    find_opportunity,
)
from sales_analytics.analytics.movement import compute_pipeline_movement
from sales_analytics.analytics.opportunities import Opportunity, build_opportunities
from sales_analytics.analytics.rollup import build_attainment_heatmap, build_salesperson_rollup
from sales_analytics.core.errors import BadRequestError, NotFoundError
from sales_analytics.models.sales import SalesDataset
from sales_analytics.repositories.sales_data_repository import SalesDataRepository
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
from sales_analytics.shared.response import Pagination, paginate_list

logger = logging.getLogger(__name__)


class SalesAnalyticsService:
    """Recomputes every sales figure from a fresh read of the source tables."""

    def __init__(
        self,
        repository: SalesDataRepository,
        today: Optional[date] = None,
        simulation_iterations: int = 1000,
        simulation_seed: Optional[int] = None,
    ) -> None:
        self.repository = repository
        self._today = today
        self.simulation_iterations = simulation_iterations
        self.simulation_seed = simulation_seed

    @property
    def today(self) -> date:
        return self._today or date.today()

    def _load(self) -> Tuple[SalesDataset, List[Opportunity]]:
        dataset = self.repository.load_dataset()
        opportunities = build_opportunities(dataset)
        logger.debug(
            "Built %s opportunities from %s closed deals and %s snapshot rows",
            len(opportunities),
            len(dataset.closed_deals),
            len(dataset.pipeline_snapshots),
        )
        return dataset, opportunities

    def get_overview_metrics(self, filters: SalesFilters) -> OverviewMetrics:
        dataset, opportunities = self._load()
        return compute_overview_metrics(dataset, opportunities, filters, self.today)

    def get_funnel(self, filters: SalesFilters) -> FunnelResponse:
        _, opportunities = self._load()
        return compute_funnel(opportunities, filters)

    def get_key_deals(self, filters: DealsFilters) -> KeyDealsResponse:
        _, opportunities = self._load()
        deals = compute_key_deals(
            opportunities,
            filters,
            sort_field=filters.sort_field,
            sort_direction=filters.sort_direction,
            limit=filters.limit,
        )
        return KeyDealsResponse(deals=deals)

    def list_closed_deals(self, filters: DealsFilters) -> Tuple[List[ClosedDeal], Pagination]:
        _, opportunities = self._load()
        deals = compute_closed_deals(opportunities, filters)
        return paginate_list(deals, filters.page, filters.page_size)

    def get_deal(self, deal_id: str) -> DealDetail:
        _, opportunities = self._load()
        deal = find_opportunity(opportunities, deal_id)
        if not deal:
            raise NotFoundError("Deal not found")
        return deal

    def get_quarterly_forecast(self, filters: SalesFilters) -> QuarterlyForecastResponse:
        _, opportunities = self._load()
        return compute_quarterly_forecast(opportunities, filters, self.today)

    def get_regional_forecast(self, filters: SalesFilters) -> RegionalForecastResponse:
        _, opportunities = self._load()
        return compute_regional_forecast(opportunities, filters, self.today)

    def get_forecast_trend(self, filters: SalesFilters) -> ForecastTrendResponse:
        _, opportunities = self._load()
        return compute_forecast_trend(opportunities, filters, self.today)

    def get_forecast_by_subcategory(self, filters: SalesFilters) -> SubCategoryForecastResponse:
        _, opportunities = self._load()
        return compute_forecast_by_subcategory(opportunities, filters)

    def get_forecast_simulation(self, filters: SimulationFilters) -> ForecastSimulation:
        _, opportunities = self._load()
        seed = filters.seed if filters.seed is not None else self.simulation_seed
        return simulate_forecast(
            opportunities,
            filters,
            iterations=filters.iterations or self.simulation_iterations,
            seed=seed,
        )

    def get_pipeline_movement(self, filters: MovementFilters) -> PipelineMovementResponse:
        if filters.target_month and not 1 <= int(filters.target_month[5:7]) <= 12:
            raise BadRequestError("target_month must be a valid YYYY-MM month")
        dataset, _ = self._load()
        return compute_pipeline_movement(
            dataset.pipeline_snapshots,
            filters,
            target_month=filters.target_month,
            lookback_months=filters.lookback_months,
        )

    def get_pipeline_by_subcategory(self, filters: SalesFilters) -> PipelineSubCategoryResponse:
        _, opportunities = self._load()
        return compute_pipeline_by_subcategory(opportunities, filters)

    def get_salespeople(self, filters: QuotaFilters) -> SalespeopleResponse:
        dataset, opportunities = self._load()
        return build_salesperson_rollup(
            dataset,
            opportunities,
            filters,
            self.today,
            name_filter=filters.name_filter,
            region_filter=filters.region_filter,
            sort_field=filters.sort_field,
            sort_direction=filters.sort_direction,
        )

    def get_attainment_heatmap(self, filters: QuotaFilters) -> AttainmentHeatmapResponse:
        return build_attainment_heatmap(self.get_salespeople(filters))
