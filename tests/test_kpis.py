from __future__ import annotations

from sales_analytics.analytics.filters import RevenueType, Valuation
from sales_analytics.analytics.kpis import (
    average_sales_cycle,
    compute_closed_deals,
    compute_funnel,
    compute_key_deals,
    compute_overview_metrics,
    find_opportunity,
    growth_pct,
    reconstruct_lost_value,
)
from sales_analytics.analytics.opportunities import build_opportunities
from sales_analytics.models.sales import SalesDataset
from sales_analytics.schemas.sales import SalesFilters


def test_overview_metrics_without_filters(sales_dataset, opportunities, today):
    metrics = compute_overview_metrics(sales_dataset, opportunities, SalesFilters(), today)

    assert metrics.total_closed_acv == 3900
    assert metrics.forecast_acv == 4410
    assert metrics.weighted_pipeline_acv == 510
    assert metrics.forecast_acv - metrics.total_closed_acv == metrics.weighted_pipeline_acv
    assert metrics.previous_year_closed_acv == 400
    assert metrics.previous_year_forecast_acv == 400
    assert metrics.yoy_growth == 1002.5
    assert metrics.conversion_rate == 86.7
    assert metrics.avg_deal_size == 1300
    assert metrics.avg_sales_cycle == 75
    assert (metrics.closed_won_count, metrics.closed_lost_count, metrics.active_deals_count) == (3, 0, 3)
    assert metrics.new_business_license_acv == 3000
    assert metrics.implementation_acv == 500
    assert metrics.extension_renewal_license == 400
    assert metrics.total_pipeline_value == 2600


def test_overview_metrics_for_license_in_one_year(sales_dataset, opportunities, today):
    filters = SalesFilters(year=["2026"], revenue_type="License")
    metrics = compute_overview_metrics(sales_dataset, opportunities, filters, today)

    assert metrics.total_closed_acv == 3000
    assert metrics.previous_year_closed_acv == 400
    assert metrics.closed_won_count == 2
    assert metrics.avg_deal_size == 1500


def test_overview_metrics_are_idempotent(sales_dataset, opportunities, today):
    filters = SalesFilters(region=["North America"])
    first = compute_overview_metrics(sales_dataset, opportunities, filters, today)
    second = compute_overview_metrics(sales_dataset, opportunities, filters, today)
    assert first == second


def test_empty_dataset_yields_zeros(today):
    dataset = SalesDataset()
    metrics = compute_overview_metrics(dataset, build_opportunities(dataset), SalesFilters(), today)
    assert metrics.total_closed_acv == 0
    assert metrics.forecast_acv == 0
    assert metrics.yoy_growth == 0
    assert metrics.conversion_rate == 0
    assert metrics.avg_deal_size == 0
    assert metrics.avg_sales_cycle == 0


def test_growth_pct_guards_missing_prior():
    assert growth_pct(150, 100) == 50.0
    assert growth_pct(150, 0) == 0.0


def test_lost_value_is_reconstructed_across_snapshots(sales_dataset):
    valuation = Valuation(RevenueType.ALL)
    assert reconstruct_lost_value(sales_dataset.pipeline_snapshots, SalesFilters(), valuation) == 600
    upsell_only = SalesFilters(logo_type=["Upsell"])
    assert reconstruct_lost_value(sales_dataset.pipeline_snapshots, upsell_only, valuation) == 400


def test_sales_cycle_respects_revenue_type(sales_dataset):
    assert average_sales_cycle(sales_dataset, SalesFilters(), RevenueType.LICENSE) == 75
    assert average_sales_cycle(sales_dataset, SalesFilters(), RevenueType.IMPLEMENTATION) == 0
    assert average_sales_cycle(sales_dataset, SalesFilters(month=["Apr"]), RevenueType.ALL) == 90


def test_funnel_groups_open_pipeline_by_stage(opportunities):
    funnel = compute_funnel(opportunities, SalesFilters())
    assert [(stage.stage, stage.count, stage.value) for stage in funnel.stages] == [
        ("Proposal", 1, 450),
        ("Qualification", 1, 300),
        ("Stalled", 1, 60),
    ]


def test_key_deals_rank_by_unweighted_value(opportunities):
    deals = compute_key_deals(opportunities, SalesFilters())
    assert [(deal.id, deal.unweighted_value) for deal in deals] == [("P-400", 1500), ("P-200", 900)]
    assert deals[0].unweighted_license_value == 1000
    assert deals[0].unweighted_implementation_value == 500


def test_key_deals_sorting_and_limit(opportunities):
    deals = compute_key_deals(opportunities, SalesFilters(), sort_field="name", sort_direction="asc", limit=1)
    assert [deal.id for deal in deals] == ["P-200"]


def test_closed_deals_list_only_wins(opportunities):
    deals = compute_closed_deals(opportunities, SalesFilters(year=["2026"]))
    assert sorted(deal.id for deal in deals) == ["C1", "C3"]
    acme = next(deal for deal in deals if deal.id == "C1")
    assert acme.closed_acv == 1500
    assert [share.sub_category for share in acme.subcategory_breakdown] == ["Payments", "Lending"]


def test_find_opportunity(opportunities):
    detail = find_opportunity(opportunities, "P-200")
    assert detail is not None
    assert detail.status == "Active"
    assert detail.product_category == "Core Banking"
    assert find_opportunity(opportunities, "missing") is None
