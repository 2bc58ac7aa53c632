from __future__ import annotations

import random
from datetime import date
from statistics import mean, median, pstdev, quantiles
from typing import Dict, List, Optional

from sales_analytics.analytics.filters import Valuation, filter_opportunities, previous_year, reporting_year
from sales_analytics.analytics.kpis import growth_pct, open_pipeline, won
from sales_analytics.analytics.opportunities import UNALLOCATED, Opportunity
from sales_analytics.schemas.sales import (
    ForecastSimulation,
    ForecastTrendPoint,
    ForecastTrendResponse,
    PipelineSubCategoryResponse,
    PipelineSubCategoryRow,
    QuarterlyForecastPoint,
    QuarterlyForecastResponse,
    RegionalForecastResponse,
    RegionalForecastRow,
    SalesFilters,
    SubCategoryForecastResponse,
    SubCategoryForecastRow,
)
from sales_analytics.shared.time import MONTH_LABELS, QUARTER_LABELS, quarter_of

REGIONS = ["North America", "Europe", "LATAM", "Middle East", "APAC"]
# Used when no seed is configured so repeated runs over the same data agree.
DEFAULT_SIMULATION_SEED = 1729


def _in_year(opportunity: Opportunity, year: int) -> bool:
    return opportunity.close_year == year


def _in_quarter(opportunity: Opportunity, year: int, quarter: int) -> bool:
    closes = opportunity.expected_close_date
    return closes is not None and closes.year == year and quarter_of(closes) == quarter


def _in_month(opportunity: Opportunity, year: int, month: int) -> bool:
    closes = opportunity.expected_close_date
    return closes is not None and closes.year == year and closes.month == month


def _through_month(opportunity: Opportunity, year: int, month: int) -> bool:
    closes = opportunity.expected_close_date
    return closes is not None and closes.year == year and closes.month <= month


def _actuals_through_quarter(year: int, today: date) -> int:
    if year < today.year:
        return 4
    if year > today.year:
        return 0
    return quarter_of(today)


def compute_quarterly_forecast(
    opportunities: List[Opportunity], filters: SalesFilters, today: date
) -> QuarterlyForecastResponse:
    valuation = Valuation.for_filters(filters)
    year = reporting_year(filters, today)
    filtered = filter_opportunities(opportunities, filters)
    prior_won = won(filter_opportunities(opportunities, previous_year(filters, year)))
    closed = won(filtered)
    pipeline = open_pipeline(filtered, include_renewals=False)
    last_actual_quarter = _actuals_through_quarter(year, today)

    points: List[QuarterlyForecastPoint] = []
    for quarter, label in enumerate(QUARTER_LABELS, start=1):
        actual = 0.0
        if quarter <= last_actual_quarter:
            actual = valuation.total(o for o in closed if _in_quarter(o, year, quarter))
        weighted = valuation.total(o for o in pipeline if _in_quarter(o, year, quarter))
        forecast = actual + weighted
        prior = valuation.total(o for o in prior_won if _in_quarter(o, year - 1, quarter))
        points.append(
            QuarterlyForecastPoint(
                quarter=label,
                forecast=round(forecast),
                actual=round(actual),
                weighted_pipeline=round(weighted),
                previous_year=round(prior),
                variance=round(forecast - prior),
                yoy_growth=growth_pct(forecast, prior),
            )
        )
    return QuarterlyForecastResponse(year=year, quarters=points)


def compute_regional_forecast(
    opportunities: List[Opportunity], filters: SalesFilters, today: date
) -> RegionalForecastResponse:
    valuation = Valuation.for_filters(filters)
    year = reporting_year(filters, today)
    filtered = filter_opportunities(opportunities, filters)
    prior = filter_opportunities(opportunities, previous_year(filters, year))
    closed = won(filtered)
    pipeline = open_pipeline(filtered, include_renewals=False)
    prior_closed = won(prior)
    prior_pipeline = open_pipeline(prior, include_renewals=False)

    rows: List[RegionalForecastRow] = []
    for region in REGIONS:
        closed_value = valuation.total(o for o in closed if o.region == region and _in_year(o, year))
        forecast = closed_value + valuation.total(o for o in pipeline if o.region == region)
        prior_forecast = valuation.total(o for o in prior_closed if o.region == region) + valuation.total(
            o for o in prior_pipeline if o.region == region
        )
        rows.append(
            RegionalForecastRow(
                region=region,
                forecast=round(forecast),
                previous_year_acv=round(prior_forecast),
                closed_acv=round(closed_value),
                variance=round(forecast - prior_forecast),
                yoy_growth=growth_pct(forecast, prior_forecast),
            )
        )
    return RegionalForecastResponse(year=year, regions=rows)


def compute_forecast_trend(
    opportunities: List[Opportunity], filters: SalesFilters, today: date
) -> ForecastTrendResponse:
    valuation = Valuation.for_filters(filters)
    year = reporting_year(filters, today)
    filtered = filter_opportunities(opportunities, filters)
    closed = won(filtered)
    pipeline = open_pipeline(filtered, include_renewals=False)
    prior_won = won(filter_opportunities(opportunities, previous_year(filters, year)))

    points: List[ForecastTrendPoint] = []
    for month, label in enumerate(MONTH_LABELS, start=1):
        cumulative = valuation.total(o for o in closed if _through_month(o, year, month))
        cumulative += valuation.total(o for o in pipeline if _through_month(o, year, month))
        prior = valuation.total(o for o in prior_won if _through_month(o, year - 1, month))
        points.append(
            ForecastTrendPoint(
                month=label,
                cumulative_forecast=round(cumulative),
                cumulative_previous_year=round(prior),
                monthly_won=round(valuation.total(o for o in closed if _in_month(o, year, month))),
                monthly_pipeline=round(valuation.total(o for o in pipeline if _in_month(o, year, month))),
                variance=round(cumulative - prior),
                yoy_growth=growth_pct(cumulative, prior),
            )
        )
    return ForecastTrendResponse(year=year, months=points)


def compute_forecast_by_subcategory(
    opportunities: List[Opportunity], filters: SalesFilters
) -> SubCategoryForecastResponse:
    valuation = Valuation.for_filters(filters)
    totals: Dict[str, float] = {}
    counts: Dict[str, int] = {}
    categories: Dict[str, str] = {}
    for opportunity in open_pipeline(filter_opportunities(opportunities, filters)):
        sub_category = opportunity.product_sub_category or UNALLOCATED
        totals[sub_category] = totals.get(sub_category, 0.0) + valuation.of(opportunity)
        counts[sub_category] = counts.get(sub_category, 0) + 1
        categories.setdefault(sub_category, opportunity.product_category or UNALLOCATED)

    grand_total = sum(totals.values())
    rows = [
        SubCategoryForecastRow(
            sub_category=sub_category,
            category=categories[sub_category],
            weighted_forecast=round(total),
            percent_of_total=round(total / grand_total * 100, 1) if grand_total > 0 else 0.0,
            deal_count=counts[sub_category],
        )
        for sub_category, total in totals.items()
    ]
    rows.sort(key=lambda row: row.weighted_forecast, reverse=True)
    return SubCategoryForecastResponse(subcategories=rows)


def compute_pipeline_by_subcategory(
    opportunities: List[Opportunity], filters: SalesFilters
) -> PipelineSubCategoryResponse:
    valuation = Valuation.for_filters(filters)
    pipeline: Dict[str, float] = {}
    weighted: Dict[str, float] = {}
    counts: Dict[str, int] = {}
    categories: Dict[str, str] = {}
    for opportunity in open_pipeline(filter_opportunities(opportunities, filters)):
        sub_category = opportunity.product_sub_category or UNALLOCATED
        pipeline[sub_category] = pipeline.get(sub_category, 0.0) + opportunity.deal_value
        weighted[sub_category] = weighted.get(sub_category, 0.0) + valuation.of(opportunity)
        counts[sub_category] = counts.get(sub_category, 0) + 1
        categories.setdefault(sub_category, opportunity.product_category or UNALLOCATED)

    rows = [
        PipelineSubCategoryRow(
            sub_category=sub_category,
            category=categories[sub_category],
            pipeline_value=round(pipeline[sub_category]),
            weighted_value=round(weighted[sub_category]),
            deal_count=counts[sub_category],
        )
        for sub_category in pipeline
    ]
    rows.sort(key=lambda row: row.pipeline_value, reverse=True)
    return PipelineSubCategoryResponse(subcategories=rows)


def simulate_forecast(
    opportunities: List[Opportunity],
    filters: SalesFilters,
    iterations: int,
    seed: Optional[int] = None,
) -> ForecastSimulation:
    """Monte Carlo spread of the forecast.

    Closed value is fixed; every open deal closes at its nominal value with
    its own probability, independently per iteration. Without a seed the
    default one is used, so the same inputs always give the same spread.
    """
    valuation = Valuation.for_filters(filters)
    filtered = filter_opportunities(opportunities, filters)
    closed_value = valuation.total(won(filtered))
    deals = [
        (valuation.unweighted_of(opportunity), opportunity.probability / 100)
        for opportunity in open_pipeline(filtered, include_renewals=False)
    ]
    expected = sum(nominal * chance for nominal, chance in deals)

    rng = random.Random(DEFAULT_SIMULATION_SEED if seed is None else seed)
    runs = max(iterations, 2)
    outcomes = [
        closed_value + sum(nominal for nominal, chance in deals if rng.random() < chance)
        for _ in range(runs)
    ]
    cuts = quantiles(outcomes, n=20, method="inclusive")
    return ForecastSimulation(
        iterations=runs,
        deal_count=len(deals),
        closed_acv=round(closed_value),
        expected_pipeline=round(expected),
        mean=round(mean(outcomes)),
        median=round(median(outcomes)),
        std_dev=round(pstdev(outcomes)),
        p10=round(cuts[1]),
        p25=round(cuts[4]),
        p75=round(cuts[14]),
        p90=round(cuts[17]),
    )
