from __future__ import annotations

from functools import lru_cache

from sales_analytics.core.config import get_settings
from sales_analytics.repositories.sales_data_repository import SalesDataRepository
from sales_analytics.services.sales_analytics_service import SalesAnalyticsService


@lru_cache
def get_sales_data_repository() -> SalesDataRepository:
    return SalesDataRepository()


def get_sales_analytics_service() -> SalesAnalyticsService:
    settings = get_settings()
    return SalesAnalyticsService(
        repository=get_sales_data_repository(),
        today=settings.reporting_date,
        simulation_iterations=settings.simulation_iterations,
        simulation_seed=settings.simulation_seed,
    )
