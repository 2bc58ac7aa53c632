from __future__ import annotations

from datetime import date

from sales_analytics.analytics.forecast import (
    compute_forecast_by_subcategory,
    compute_forecast_trend,
    compute_pipeline_by_subcategory,
    compute_quarterly_forecast,
    compute_regional_forecast,
    simulate_forecast,
)
from sales_analytics.schemas.sales import SalesFilters, SimulationFilters


def test_quarterly_forecast_splits_actuals_and_pipeline(opportunities, today):
    result = compute_quarterly_forecast(opportunities, SalesFilters(), today)
    assert result.year == 2026
    q1, q2, q3, q4 = result.quarters

    assert (q1.quarter, q1.forecast, q1.actual, q1.previous_year) == ("Q1", 1500, 1500, 400)
    assert q1.variance == 1100
    assert q1.yoy_growth == 275.0
    assert (q2.actual, q2.weighted_pipeline, q2.yoy_growth) == (2000, 0, 0.0)
    assert (q3.actual, q3.weighted_pipeline, q3.forecast) == (0, 510, 510)
    assert q4.forecast == 0


def test_quarterly_actuals_stop_at_current_quarter(opportunities):
    early = compute_quarterly_forecast(opportunities, SalesFilters(), date(2026, 2, 1))
    assert early.quarters[0].actual == 1500
    assert early.quarters[1].actual == 0

    future = compute_quarterly_forecast(opportunities, SalesFilters(year=["2027"]), date(2026, 2, 1))
    assert all(point.actual == 0 for point in future.quarters)


def test_regional_forecast_covers_fixed_regions(opportunities, today):
    result = compute_regional_forecast(opportunities, SalesFilters(), today)
    rows = {row.region: row for row in result.regions}

    assert list(rows) == ["North America", "Europe", "LATAM", "Middle East", "APAC"]
    assert rows["Europe"].forecast == 1500
    assert rows["North America"].forecast == 2510
    assert rows["North America"].closed_acv == 2000
    assert rows["North America"].previous_year_acv == 400
    assert rows["North America"].yoy_growth == 527.5
    assert rows["APAC"].forecast == 0


def test_forecast_trend_is_cumulative(opportunities, today):
    result = compute_forecast_trend(opportunities, SalesFilters(), today)
    months = {point.month: point for point in result.months}

    assert len(result.months) == 12
    assert months["Jan"].cumulative_forecast == 0
    assert months["Feb"].cumulative_forecast == 1500
    assert months["May"].cumulative_forecast == 3500
    assert months["May"].monthly_won == 2000
    assert months["Aug"].cumulative_forecast == 3560
    assert months["Sep"].cumulative_forecast == 4010
    assert months["Dec"].cumulative_forecast == 4010
    assert months["Mar"].cumulative_previous_year == 400

    values = [point.cumulative_forecast for point in result.months]
    assert values == sorted(values)


def test_forecast_by_subcategory_shares(opportunities):
    rows = compute_forecast_by_subcategory(opportunities, SalesFilters()).subcategories
    assert [(row.sub_category, row.weighted_forecast, row.deal_count) for row in rows] == [
        ("Payments", 450, 1),
        ("Unallocated", 360, 2),
    ]
    assert rows[0].percent_of_total == 55.6
    assert rows[0].category == "Core Banking"
    assert rows[1].percent_of_total == 44.4


def test_pipeline_by_subcategory_orders_by_nominal_value(opportunities):
    rows = compute_pipeline_by_subcategory(opportunities, SalesFilters()).subcategories
    assert [(row.sub_category, row.pipeline_value, row.weighted_value) for row in rows] == [
        ("Unallocated", 1700, 360),
        ("Payments", 900, 450),
    ]


def test_simulation_outcomes_stay_within_possible_totals(opportunities):
    result = simulate_forecast(opportunities, SalesFilters(), iterations=500, seed=11)

    assert result.iterations == 500
    assert result.deal_count == 2
    assert result.closed_acv == 3900
    assert result.expected_pipeline == 510
    assert 3900 <= result.p10 <= result.p25 <= result.median <= result.p75 <= result.p90 <= 5000
    assert 3900 <= result.mean <= 5000


def test_simulation_is_reproducible_with_seed(opportunities):
    first = simulate_forecast(opportunities, SalesFilters(), iterations=200, seed=3)
    second = simulate_forecast(opportunities, SalesFilters(), iterations=200, seed=3)
    assert first == second


def test_simulation_without_open_pipeline_is_flat(opportunities):
    result = simulate_forecast(opportunities, SalesFilters(year=["2025"]), iterations=100, seed=1)
    assert result.deal_count == 0
    assert result.mean == result.p10 == result.p90 == 400
    assert result.std_dev == 0


def test_simulation_without_seed_is_repeatable(opportunities):
    first = simulate_forecast(opportunities, SalesFilters(), iterations=300)
    second = simulate_forecast(opportunities, SalesFilters(), iterations=300)
    assert first == second


def test_service_simulation_is_repeatable_with_default_settings(default_service):
    assert default_service.simulation_seed is None
    first = default_service.get_forecast_simulation(SimulationFilters())
    second = default_service.get_forecast_simulation(SimulationFilters())
    assert first == second
    assert first.iterations == 1000
