from __future__ import annotations

from sales_analytics.analytics.movement import compute_pipeline_movement, resolve_target_month
from sales_analytics.schemas.sales import SalesFilters


def _reconciles(result) -> bool:
    return (
        result.starting_pipeline
        + result.new_deals.value
        + result.increased.value
        - result.decreased.value
        - result.won.value
        - result.lost.value
        == result.ending_pipeline
    )


def test_month_over_month_buckets(make_snapshot):
    snapshots = [
        make_snapshot("2026-01-01", "D1", "Negotiation", 100),
        make_snapshot("2026-01-01", "D2", "Closed Lost", 50),
        make_snapshot("2026-02-01", "D1", "Negotiation", 120),
        make_snapshot("2026-02-01", "D3", "Proposal", 30),
    ]
    result = compute_pipeline_movement(snapshots, SalesFilters(revenue_type="License"))

    assert result.prev_label == "Jan'26"
    assert result.curr_label == "Feb'26"
    assert result.starting_pipeline == 150
    assert result.ending_pipeline == 150
    assert (result.new_deals.count, result.new_deals.value) == (1, 30)
    assert (result.increased.count, result.increased.value) == (1, 20)
    assert (result.lost.count, result.lost.value) == (1, 50)
    assert result.won.count == 0
    assert result.total_change == 0
    assert _reconciles(result)


def test_default_compares_latest_two_months(sales_dataset):
    result = compute_pipeline_movement(sales_dataset.pipeline_snapshots, SalesFilters())

    assert (result.previous_month, result.target_month) == ("2026-04", "2026-05")
    assert result.starting_pipeline == 1200
    assert result.ending_pipeline == 810
    assert (result.new_deals.count, result.new_deals.value) == (2, 360)
    assert (result.increased.count, result.increased.value) == (1, 150)
    assert result.decreased.count == 0
    assert (result.won.count, result.won.value) == (1, 800)
    assert (result.lost.count, result.lost.value) == (1, 100)
    assert _reconciles(result)

    won = [detail for detail in result.deal_details if detail.category == "Won"]
    assert [detail.deal_id for detail in won] == ["P-100"]
    assert won[0].change == -800


def test_waterfall_steps(sales_dataset):
    result = compute_pipeline_movement(sales_dataset.pipeline_snapshots, SalesFilters())
    steps = [(step.name, step.bottom, step.value, step.step_type) for step in result.waterfall]
    assert steps == [
        ("Apr'26 Pipeline", 0, 1200, "initial"),
        ("New Deals", 1200, 360, "increase"),
        ("Value Increased", 1560, 150, "increase"),
        ("Value Decreased", 1710, 0, "decrease"),
        ("Closed Won", 910, 800, "decrease"),
        ("Lost Deals", 810, 100, "decrease"),
        ("May'26 Pipeline", 0, 810, "final"),
    ]
    assert result.waterfall[4].display_value == -800


def test_only_one_snapshot_month_gives_empty_result(make_snapshot):
    result = compute_pipeline_movement([make_snapshot("2026-01-01", "D1", "Proposal", 100)], SalesFilters())
    assert result.starting_pipeline == 0
    assert result.ending_pipeline == 0
    assert result.waterfall == []
    assert result.prev_label == ""


def test_earliest_month_as_target_gives_empty_result(sales_dataset):
    filters = SalesFilters(year=["2026"], month=["Apr"])
    result = compute_pipeline_movement(sales_dataset.pipeline_snapshots, filters)
    assert result.target_month is None
    assert result.deal_details == []


def test_dimension_filters_apply_to_both_months(sales_dataset):
    result = compute_pipeline_movement(sales_dataset.pipeline_snapshots, SalesFilters(logo_type=["Renewal"]))
    assert result.starting_pipeline == 0
    assert (result.new_deals.count, result.new_deals.value) == (1, 300)
    assert _reconciles(result)


def test_lookback_reaches_back_several_months(make_snapshot):
    snapshots = [
        make_snapshot("2026-01-01", "D1", "Proposal", 100),
        make_snapshot("2026-02-01", "D1", "Proposal", 150),
        make_snapshot("2026-03-01", "D1", "Proposal", 90),
        make_snapshot("2026-04-01", "D1", "Proposal", 80),
    ]
    result = compute_pipeline_movement(snapshots, SalesFilters(), lookback_months=3)
    assert (result.previous_month, result.target_month) == ("2026-01", "2026-04")
    assert (result.decreased.count, result.decreased.value) == (1, 20)


def test_resolve_target_month_by_year_and_quarter():
    months = ["2025-11", "2025-12", "2026-01", "2026-02", "2026-04"]
    assert resolve_target_month(months, SalesFilters(), None) == "2026-04"
    assert resolve_target_month(months, SalesFilters(year=["2025"]), None) == "2025-12"
    assert resolve_target_month(months, SalesFilters(year=["2026"], month=["Feb"]), None) == "2026-02"
    assert resolve_target_month(months, SalesFilters(year=["2026"], month=["Mar"]), None) == "2026-04"
    assert resolve_target_month(months, SalesFilters(year=["2026"], quarter=["Q1"]), None) == "2026-02"
    assert resolve_target_month(months, SalesFilters(), "2026-01") == "2026-01"


def test_rows_without_deal_id_are_left_out_of_movement(make_snapshot):
    snapshots = [
        make_snapshot("2026-01-01", "D1", "Proposal", 100),
        make_snapshot("2026-01-01", "", "Proposal", 40),
        make_snapshot("2026-02-01", "D1", "Proposal", 100),
        make_snapshot("2026-02-01", "", "Proposal", 70),
        make_snapshot("2026-02-01", "", "Negotiation", 25),
    ]
    result = compute_pipeline_movement(snapshots, SalesFilters())
    assert result.starting_pipeline == 100
    assert result.ending_pipeline == 100
    assert result.new_deals.count == 0
    assert result.deal_details == []
    assert _reconciles(result)
