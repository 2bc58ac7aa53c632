from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional

from sales_analytics.analytics.filters import (
    LICENSE_ACV_LOGO_TYPES,
    RENEWAL_LOGO_TYPES,
    RevenueType,
    Valuation,
    filter_opportunities,
    is_renewal,
    matches_fields,
    matches_snapshot,
    previous_year,
    sort_by_field,
)
from sales_analytics.analytics.opportunities import Opportunity
from sales_analytics.analytics.stages import DealStatus, parse_stage
from sales_analytics.models.sales import PipelineSnapshotRecord, SalesDataset
from sales_analytics.schemas.sales import (
    ClosedDeal,
    DealDetail,
    FunnelResponse,
    FunnelStage,
    KeyDeal,
    OverviewMetrics,
    SalesFilters,
    SubCategoryShareSummary,
)
from sales_analytics.shared.time import month_key, parse_local_date


def growth_pct(current: float, prior: float) -> float:
    if prior <= 0:
        return 0.0
    return round((current - prior) / prior * 100, 1)


def won(opportunities: Iterable[Opportunity]) -> List[Opportunity]:
    return [opportunity for opportunity in opportunities if opportunity.status is DealStatus.WON]


def open_pipeline(opportunities: Iterable[Opportunity], include_renewals: bool = True) -> List[Opportunity]:
    return [
        opportunity
        for opportunity in opportunities
        if opportunity.is_open and (include_renewals or not is_renewal(opportunity))
    ]


def forecast_value(opportunities: List[Opportunity], valuation: Valuation) -> float:
    """Closed value plus weighted pipeline, with expansion pipeline left out."""
    closed = valuation.total(won(opportunities))
    pipeline = valuation.total(open_pipeline(opportunities, include_renewals=False))
    return closed + pipeline


def compute_overview_metrics(
    dataset: SalesDataset,
    opportunities: List[Opportunity],
    filters: SalesFilters,
    today: date,
) -> OverviewMetrics:
    valuation = Valuation.for_filters(filters)
    filtered = filter_opportunities(opportunities, filters)
    prior = filter_opportunities(opportunities, previous_year(filters, today.year))

    closed_won = won(filtered)
    closed_lost = [opportunity for opportunity in filtered if opportunity.status is DealStatus.LOST]
    active = open_pipeline(filtered)

    total_closed = valuation.total(closed_won)
    weighted_pipeline = valuation.total(open_pipeline(filtered, include_renewals=False))
    forecast = total_closed + weighted_pipeline
    prior_closed = valuation.total(won(prior))
    prior_forecast = forecast_value(prior, valuation)

    lost_value = reconstruct_lost_value(dataset.pipeline_snapshots, filters, valuation)
    conversion = total_closed / (total_closed + lost_value) * 100 if total_closed + lost_value > 0 else 0.0

    valued_wins = [opportunity for opportunity in closed_won if valuation.of(opportunity) > 0]
    avg_deal_size = total_closed / len(valued_wins) if valued_wins else 0.0

    return OverviewMetrics(
        total_closed_acv=round(total_closed),
        forecast_acv=round(forecast),
        weighted_pipeline_acv=round(weighted_pipeline),
        previous_year_closed_acv=round(prior_closed),
        previous_year_forecast_acv=round(prior_forecast),
        yoy_growth=growth_pct(forecast, prior_forecast),
        conversion_rate=round(conversion, 1),
        avg_deal_size=round(avg_deal_size),
        avg_sales_cycle=round(average_sales_cycle(dataset, filters, valuation.revenue_type)),
        closed_won_count=len(closed_won),
        closed_lost_count=len(closed_lost),
        active_deals_count=len(active),
        new_business_license_acv=round(
            sum(o.license_value for o in closed_won if o.logo_type in LICENSE_ACV_LOGO_TYPES)
        ),
        implementation_acv=round(sum(o.implementation_value for o in closed_won)),
        extension_renewal_license=round(
            sum(o.license_value for o in closed_won if o.logo_type in RENEWAL_LOGO_TYPES)
        ),
        total_pipeline_value=round(sum(o.deal_value for o in active)),
    )


def reconstruct_lost_value(
    snapshots: List[PipelineSnapshotRecord], filters: SalesFilters, valuation: Valuation
) -> float:
    """Nominal value of every deal that ever reached a lost or stalled stage.

    Lost deals drop out of later snapshots, so every month is scanned and each
    deal keeps the value recorded in the last month it was lost or stalled.
    Snapshot values are probability-weighted and are divided back out.
    """
    lost: Dict[str, float] = {}
    for row in sorted(snapshots, key=lambda row: month_key(row.snapshot_month) or ""):
        if not parse_stage(row.current_stage).is_lost_or_stalled:
            continue
        if not matches_snapshot(row, filters):
            continue
        lost[row.pipeline_deal_id] = valuation.unweighted(
            row.license_acv, row.implementation_value, row.probability
        )
    return sum(lost.values())


def average_sales_cycle(dataset: SalesDataset, filters: SalesFilters, revenue_type: RevenueType) -> float:
    """Mean days from creation to close over deals that reached a closed stage."""
    close_dates: Dict[str, str] = {
        record.pipeline_deal_id: record.close_date
        for record in dataset.closed_deals
        if record.pipeline_deal_id and record.close_date
    }

    first_rows: Dict[str, PipelineSnapshotRecord] = {}
    history: Dict[str, List[PipelineSnapshotRecord]] = defaultdict(list)
    for row in dataset.pipeline_snapshots:
        if not row.pipeline_deal_id:
            continue
        first_rows.setdefault(row.pipeline_deal_id, row)
        history[row.pipeline_deal_id].append(row)

    durations: List[int] = []
    for deal_id, first in first_rows.items():
        created = parse_local_date(first.created_date)
        if created is None:
            continue
        if revenue_type is RevenueType.LICENSE and first.license_acv <= 0:
            continue
        if revenue_type is RevenueType.IMPLEMENTATION and first.implementation_value <= 0:
            continue

        closed_months = sorted(
            key
            for key in (
                month_key(entry.snapshot_month)
                for entry in history[deal_id]
                if parse_stage(entry.current_stage).is_terminal
            )
            if key
        )
        if not closed_months:
            continue
        closed_on = parse_local_date(close_dates.get(deal_id) or closed_months[-1])
        if closed_on is None:
            continue
        if not matches_fields(
            filters,
            close_date=closed_on,
            region=first.region,
            vertical=first.vertical,
            segment=first.segment,
            logo_type=first.logo_type,
        ):
            continue
        durations.append(max(0, (closed_on - created).days))

    return sum(durations) / len(durations) if durations else 0.0


def compute_funnel(opportunities: List[Opportunity], filters: SalesFilters) -> FunnelResponse:
    valuation = Valuation.for_filters(filters)
    buckets: Dict[str, List[float]] = {}
    for opportunity in open_pipeline(filter_opportunities(opportunities, filters)):
        if "Closed" in opportunity.stage:
            continue
        bucket = buckets.setdefault(opportunity.stage, [0, 0.0])
        bucket[0] += 1
        bucket[1] += valuation.of(opportunity)

    stages = [
        FunnelStage(stage=stage, count=int(count), value=round(total))
        for stage, (count, total) in buckets.items()
    ]
    stages.sort(key=lambda item: item.value, reverse=True)
    return FunnelResponse(stages=stages)


def _nominal(amount: float, probability: float) -> float:
    # Key deals show a zero-probability deal at its recorded value.
    ratio = probability / 100 if probability > 0 else 1
    return (amount or 0.0) / ratio


def compute_key_deals(
    opportunities: List[Opportunity],
    filters: SalesFilters,
    sort_field: Optional[str] = None,
    sort_direction: str = "desc",
    limit: int = 10,
) -> List[KeyDeal]:
    valuation = Valuation.for_filters(filters)
    deals: List[KeyDeal] = []
    for opportunity in filter_opportunities(opportunities, filters):
        if opportunity.status is not DealStatus.ACTIVE:
            continue
        license_nominal = _nominal(opportunity.license_value, opportunity.probability)
        implementation_nominal = _nominal(opportunity.implementation_value, opportunity.probability)
        nominal = valuation.of_amounts(license_nominal, implementation_nominal)
        if nominal <= 0:
            continue
        deals.append(
            KeyDeal(
                id=opportunity.id,
                name=opportunity.name,
                account_name=opportunity.account_name,
                region=opportunity.region,
                vertical=opportunity.vertical,
                stage=opportunity.stage,
                probability=opportunity.probability,
                deal_value=round(opportunity.deal_value),
                unweighted_value=round(nominal),
                unweighted_license_value=round(license_nominal),
                unweighted_implementation_value=round(implementation_nominal),
                license_value=round(opportunity.license_value),
                implementation_value=round(opportunity.implementation_value),
                expected_close_date=opportunity.expected_close_date,
                logo_type=opportunity.logo_type,
                owner=opportunity.owner,
                product_sub_category=opportunity.product_sub_category,
                product_category=opportunity.product_category,
            )
        )

    deals.sort(key=lambda deal: deal.unweighted_value, reverse=True)
    deals = sort_by_field(deals, sort_field, sort_direction)
    return deals[:limit]


def _breakdown(opportunity: Opportunity) -> List[SubCategoryShareSummary]:
    return [
        SubCategoryShareSummary(
            sub_category=share.sub_category,
            category=share.category,
            pct=share.pct,
            value=round(share.value),
        )
        for share in opportunity.subcategory_breakdown
    ]


def compute_closed_deals(opportunities: List[Opportunity], filters: SalesFilters) -> List[ClosedDeal]:
    valuation = Valuation.for_filters(filters)
    return [
        ClosedDeal(
            id=opportunity.id,
            name=opportunity.name,
            account_name=opportunity.account_name,
            logo_type=opportunity.logo_type,
            license_value=round(opportunity.license_value),
            implementation_value=round(opportunity.implementation_value),
            closed_acv=round(valuation.of(opportunity)),
            close_date=opportunity.expected_close_date,
            region=opportunity.region,
            vertical=opportunity.vertical,
            segment=opportunity.segment,
            sold_by=opportunity.sold_by,
            sow_id=opportunity.sow_id,
            subcategory_breakdown=_breakdown(opportunity),
        )
        for opportunity in won(filter_opportunities(opportunities, filters))
    ]


def find_opportunity(opportunities: List[Opportunity], deal_id: str) -> Optional[DealDetail]:
    for opportunity in opportunities:
        if opportunity.id != deal_id:
            continue
        return DealDetail(
            id=opportunity.id,
            name=opportunity.name,
            account_name=opportunity.account_name,
            region=opportunity.region,
            vertical=opportunity.vertical,
            segment=opportunity.segment,
            stage=opportunity.stage,
            status=opportunity.status.value,
            probability=opportunity.probability,
            deal_value=round(opportunity.deal_value),
            license_value=round(opportunity.license_value),
            implementation_value=round(opportunity.implementation_value),
            weighted_value=round(opportunity.weighted_value),
            closed_acv=round(opportunity.closed_acv),
            expected_close_date=opportunity.expected_close_date,
            owner=opportunity.owner,
            logo_type=opportunity.logo_type,
            sold_by=opportunity.sold_by,
            sow_id=opportunity.sow_id,
            revenue_type=opportunity.revenue_type,
            product_sub_category=opportunity.product_sub_category,
            product_category=opportunity.product_category,
            subcategory_breakdown=_breakdown(opportunity),
        )
    return None
