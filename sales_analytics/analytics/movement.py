from __future__ import annotations

from typing import Dict, List, Optional

from sales_analytics.analytics.filters import Valuation, matches_snapshot, selected_years
from sales_analytics.analytics.stages import parse_stage
from sales_analytics.models.sales import PipelineSnapshotRecord
from sales_analytics.schemas.sales import (
    MovementBucket,
    MovementDealDetail,
    PipelineMovementResponse,
    SalesFilters,
    WaterfallStep,
)
from sales_analytics.shared.time import MONTH_LABELS, add_months, month_key, month_label, parse_local_date


def _snapshot_months(snapshots: List[PipelineSnapshotRecord]) -> List[str]:
    return sorted({key for key in (month_key(row.snapshot_month) for row in snapshots) if key})


def resolve_target_month(months: List[str], filters: SalesFilters, target_month: Optional[str]) -> str:
    """Latest month by default; year, then a single month or quarter, narrow it down."""
    target = target_month or months[-1]
    years = {str(year) for year in selected_years(filters)}
    candidates = [month for month in months if month[:4] in years]
    if not candidates:
        return target

    if filters.month and len(filters.month) == 1 and filters.month[0] in MONTH_LABELS:
        suffix = f"-{MONTH_LABELS.index(filters.month[0]) + 1:02d}"
        exact = [month for month in candidates if month.endswith(suffix)]
        return exact[0] if exact else candidates[-1]
    if filters.quarter and len(filters.quarter) == 1 and filters.quarter[0][1:].isdigit():
        quarter = int(filters.quarter[0][1:])
        suffixes = tuple(f"-{month:02d}" for month in range(quarter * 3 - 2, quarter * 3 + 1))
        in_quarter = [month for month in candidates if month.endswith(suffixes)]
        return in_quarter[-1] if in_quarter else candidates[-1]
    return candidates[-1]


def _comparison_index(months: List[str], target_index: int, lookback_months: int) -> int:
    if lookback_months <= 1:
        return target_index - 1
    target_date = parse_local_date(months[target_index])
    cutoff = month_key(add_months(target_date, -lookback_months))
    for index in range(target_index - 1, -1, -1):
        if months[index] <= cutoff:
            return index
    return 0


def _index_month(
    snapshots: List[PipelineSnapshotRecord], filters: SalesFilters, month: str
) -> Dict[str, PipelineSnapshotRecord]:
    deals: Dict[str, PipelineSnapshotRecord] = {}
    for row in snapshots:
        if month_key(row.snapshot_month) != month:
            continue
        if not row.pipeline_deal_id:
            continue
        if not matches_snapshot(row, filters, with_dates=False):
            continue
        deals[row.pipeline_deal_id] = row
    return deals


def compute_pipeline_movement(
    snapshots: List[PipelineSnapshotRecord],
    filters: SalesFilters,
    target_month: Optional[str] = None,
    lookback_months: int = 1,
) -> PipelineMovementResponse:
    """Reconcile two snapshot months into new, resized, won and lost pipeline."""
    months = _snapshot_months(snapshots)
    if len(months) < 2:
        return PipelineMovementResponse()

    target = resolve_target_month(months, filters, target_month)
    if target not in months or months.index(target) == 0:
        return PipelineMovementResponse()
    target_index = months.index(target)
    previous_index = _comparison_index(months, target_index, lookback_months)
    if previous_index < 0 or previous_index >= target_index:
        return PipelineMovementResponse()
    previous = months[previous_index]

    valuation = Valuation.for_filters(filters)
    before = _index_month(snapshots, filters, previous)
    after = _index_month(snapshots, filters, target)

    def amount(row: PipelineSnapshotRecord) -> float:
        return valuation.of_amounts(row.license_acv, row.implementation_value)

    starting = sum(amount(row) for row in before.values())
    ending = sum(amount(row) for row in after.values())
    totals = {name: [0, 0.0] for name in ("New", "Increased", "Decreased", "Won", "Lost")}
    details: List[MovementDealDetail] = []

    def record(category: str, deal_id: str, row: PipelineSnapshotRecord, old: float, new: float, stage: str) -> None:
        totals[category][0] += 1
        totals[category][1] += abs(new - old)
        details.append(
            MovementDealDetail(
                deal_id=deal_id,
                deal_name=row.deal_name,
                account_name=row.customer_name,
                category=category,
                previous_value=round(old),
                current_value=round(new),
                change=round(new - old),
                stage=stage,
            )
        )

    for deal_id, row in after.items():
        if deal_id not in before:
            record("New", deal_id, row, 0.0, amount(row), row.deal_stage)
    for deal_id, row in after.items():
        earlier = before.get(deal_id)
        if earlier is None:
            continue
        old, new = amount(earlier), amount(row)
        if new > old:
            record("Increased", deal_id, row, old, new, row.deal_stage)
        elif new < old:
            record("Decreased", deal_id, row, old, new, row.deal_stage)
    for deal_id, row in before.items():
        if deal_id in after:
            continue
        if parse_stage(row.current_stage).has_won_marker:
            record("Won", deal_id, row, amount(row), 0.0, row.current_stage)
        else:
            record("Lost", deal_id, row, amount(row), 0.0, row.current_stage or "Unknown")

    previous_label = month_label(previous)
    current_label = month_label(target)
    buckets = {name: MovementBucket(count=count, value=round(total)) for name, (count, total) in totals.items()}
    return PipelineMovementResponse(
        prev_label=previous_label,
        curr_label=current_label,
        previous_month=previous,
        target_month=target,
        starting_pipeline=round(starting),
        ending_pipeline=round(ending),
        new_deals=buckets["New"],
        increased=buckets["Increased"],
        decreased=buckets["Decreased"],
        won=buckets["Won"],
        lost=buckets["Lost"],
        total_change=round(ending - starting),
        waterfall=build_waterfall(previous_label, current_label, starting, ending, totals),
        deal_details=details,
    )


def build_waterfall(
    previous_label: str,
    current_label: str,
    starting: float,
    ending: float,
    totals: Dict[str, List[float]],
) -> List[WaterfallStep]:
    steps = [
        WaterfallStep(
            name=f"{previous_label} Pipeline",
            bottom=0,
            value=round(starting),
            display_value=round(starting),
            step_type="initial",
        )
    ]
    running = starting
    for category, name in (("New", "New Deals"), ("Increased", "Value Increased")):
        delta = totals[category][1]
        steps.append(
            WaterfallStep(
                name=name, bottom=round(running), value=round(delta), display_value=round(delta), step_type="increase"
            )
        )
        running += delta
    for category, name in (("Decreased", "Value Decreased"), ("Won", "Closed Won"), ("Lost", "Lost Deals")):
        delta = totals[category][1]
        running -= delta
        steps.append(
            WaterfallStep(
                name=name, bottom=round(running), value=round(delta), display_value=round(-delta), step_type="decrease"
            )
        )
    # Ending is summed from the target month, not derived from the deltas.
    steps.append(
        WaterfallStep(
            name=f"{current_label} Pipeline",
            bottom=0,
            value=round(ending),
            display_value=round(ending),
            step_type="final",
        )
    )
    return steps
