from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, List, Optional, Protocol, Set, Tuple

from sales_analytics.analytics.filters import (
    RevenueType,
    Valuation,
    filter_opportunities,
    previous_year,
    reporting_year,
    sort_by_field,
)
from sales_analytics.analytics.kpis import open_pipeline, won
from sales_analytics.analytics.opportunities import Opportunity
from sales_analytics.models.sales import PerformanceHistoryRecord, SalesDataset, SalesRosterRecord
from sales_analytics.schemas.sales import (
    AttainmentHeatmapResponse,
    HeatmapCell,
    HeatmapRow,
    SalespeopleResponse,
    SalespersonRow,
    SalesFilters,
)
from sales_analytics.shared.time import MONTH_LABELS

HISTORICAL_MODE = "historical"
COMPUTED_MODE = "computed"


@dataclass
class RepTotals:
    id: str
    name: str
    region: str
    quota: float = 0.0
    closed: float = 0.0
    previous_year_closed: float = 0.0
    pipeline: float = 0.0
    unweighted_pipeline: float = 0.0
    forecast: float = 0.0
    monthly_attainment: List[int] = field(default_factory=lambda: [0] * 12)
    is_manager: bool = False
    manager_id: Optional[str] = None
    level: int = 0


def _ratio(numerator: float, quota: float) -> float:
    return numerator / quota if quota > 0 else 0.0


def _attainment(closed: float, target: float) -> int:
    if target > 0:
        return round(closed / target * 100)
    return 100 if closed > 0 else 0


def to_row(rep: RepTotals) -> SalespersonRow:
    return SalespersonRow(
        id=rep.id,
        name=rep.name,
        region=rep.region,
        is_manager=rep.is_manager,
        level=rep.level,
        manager_id=rep.manager_id,
        quota=round(rep.quota),
        closed_ytd=round(rep.closed),
        previous_year_closed=round(rep.previous_year_closed),
        pipeline_value=round(rep.pipeline),
        unweighted_pipeline=round(rep.unweighted_pipeline),
        forecast=round(rep.forecast),
        pipeline_coverage=round(_ratio(rep.closed + rep.unweighted_pipeline, rep.quota), 2),
        forecast_attainment=round(_ratio(rep.forecast, rep.quota) * 100, 1),
        monthly_attainment=list(rep.monthly_attainment),
    )


class PerformanceSource(Protocol):
    mode: str

    def salespeople(self) -> List[RepTotals]:
        """Reps in display order with their final totals."""
        ...


def _closed_by_rep(history: List[PerformanceHistoryRecord], year: int) -> Dict[str, float]:
    return {row.sales_rep_id: row.total_closed for row in history if row.year == year}


class HistoricalPerformanceSource:
    """Rows from the performance table, emitted as reported."""

    mode = HISTORICAL_MODE

    def __init__(self, history: List[PerformanceHistoryRecord], year: int) -> None:
        self.history = history
        self.year = year

    def salespeople(self) -> List[RepTotals]:
        prior = _closed_by_rep(self.history, self.year - 1)
        reps: List[RepTotals] = []
        for row in self.history:
            if row.year != self.year:
                continue
            quarterly = [row.q1_closed, row.q2_closed, row.q3_closed, row.q4_closed]
            quarter_quota = row.annual_quota / 4
            reps.append(
                RepTotals(
                    id=row.sales_rep_id,
                    name=row.sales_rep_name,
                    region=row.region,
                    quota=row.annual_quota,
                    closed=row.total_closed,
                    previous_year_closed=prior.get(row.sales_rep_id, 0.0),
                    forecast=row.total_closed,
                    monthly_attainment=[_attainment(quarterly[month // 3], quarter_quota) for month in range(12)],
                )
            )
        return reps


class ComputedPerformanceSource:
    """Roster plus opportunities, with managers carrying their whole team."""

    mode = COMPUTED_MODE

    def __init__(
        self,
        roster: List[SalesRosterRecord],
        history: List[PerformanceHistoryRecord],
        opportunities: List[Opportunity],
        filters: SalesFilters,
        year: int,
    ) -> None:
        self.roster = roster
        self.history = history
        self.opportunities = opportunities
        self.filters = filters
        self.year = year
        self.valuation = Valuation.for_filters(filters, RevenueType.LICENSE)

    def salespeople(self) -> List[RepTotals]:
        reps = self._own_totals()
        rolled = rollup_teams(reps)
        return cascade(rolled)

    def _own_totals(self) -> List[RepTotals]:
        valuation = self.valuation
        filtered = filter_opportunities(self.opportunities, self.filters)
        prior_won = won(filter_opportunities(self.opportunities, previous_year(self.filters, self.year)))
        prior_reported = _closed_by_rep(self.history, self.year - 1)

        won_by_owner: Dict[str, List[Opportunity]] = defaultdict(list)
        for opportunity in won(filtered):
            if opportunity.close_year == self.year:
                won_by_owner[_owner_key(opportunity.owner)].append(opportunity)
        open_by_owner: Dict[str, List[Opportunity]] = defaultdict(list)
        for opportunity in open_pipeline(filtered):
            open_by_owner[_owner_key(opportunity.owner)].append(opportunity)
        prior_by_owner: Dict[str, List[Opportunity]] = defaultdict(list)
        for opportunity in prior_won:
            prior_by_owner[_owner_key(opportunity.owner)].append(opportunity)

        active = [member for member in self.roster if member.name and member.status == "Active"]
        manager_ids = {member.manager_id for member in active if member.manager_id}

        reps: List[RepTotals] = []
        for member in active:
            key = _owner_key(member.name)
            closed_deals = won_by_owner.get(key, [])
            open_deals = open_by_owner.get(key, [])
            prior_deals = prior_by_owner.get(key, [])

            closed = valuation.total(closed_deals)
            pipeline = valuation.total(open_deals)
            if member.sales_rep_id in prior_reported:
                previous_closed = prior_reported[member.sales_rep_id]
            else:
                previous_closed = valuation.total(prior_deals)

            reps.append(
                RepTotals(
                    id=member.sales_rep_id,
                    name=member.name,
                    region=member.region,
                    quota=member.annual_quota,
                    closed=closed,
                    previous_year_closed=previous_closed,
                    pipeline=pipeline,
                    unweighted_pipeline=sum(valuation.unweighted_of(o) for o in open_deals),
                    forecast=closed + pipeline,
                    monthly_attainment=_monthly_attainment(closed_deals, prior_deals, valuation),
                    is_manager=member.sales_rep_id in manager_ids,
                    manager_id=(
                        None
                        if not member.manager_id or member.manager_id == member.sales_rep_id
                        else member.manager_id
                    ),
                )
            )
        return reps


def _owner_key(name: str) -> str:
    return name.strip().lower()


def _monthly_attainment(
    closed_deals: List[Opportunity], prior_deals: List[Opportunity], valuation: Valuation
) -> List[int]:
    current = [0.0] * 12
    prior = [0.0] * 12
    for opportunity in closed_deals:
        if opportunity.expected_close_date:
            current[opportunity.expected_close_date.month - 1] += valuation.of(opportunity)
    for opportunity in prior_deals:
        if opportunity.expected_close_date:
            prior[opportunity.expected_close_date.month - 1] += valuation.of(opportunity)
    return [_attainment(current[month], prior[month]) for month in range(12)]


def _reports_index(reps: List[RepTotals]) -> Dict[str, List[RepTotals]]:
    reports: Dict[str, List[RepTotals]] = defaultdict(list)
    for rep in reps:
        if rep.manager_id and rep.manager_id != rep.id:
            reports[rep.manager_id].append(rep)
    return reports


def rollup_teams(reps: List[RepTotals]) -> List[RepTotals]:
    """Replace each manager's totals with their own plus every report's rollup.

    Partial sums are memoised for the duration of one call. A rep reached again
    while its own sum is still being built contributes nothing, which breaks
    reporting cycles.
    """
    by_id = {rep.id: rep for rep in reps}
    reports = _reports_index(reps)
    memo: Dict[str, Tuple[float, float, float, float, float]] = {}
    in_progress: Set[str] = set()

    def team_totals(rep_id: str) -> Tuple[float, float, float, float, float]:
        if rep_id in memo:
            return memo[rep_id]
        person = by_id.get(rep_id)
        if person is None or rep_id in in_progress:
            return (0.0, 0.0, 0.0, 0.0, 0.0)
        in_progress.add(rep_id)
        closed, forecast, pipeline, unweighted, quota = (
            person.closed,
            person.forecast,
            person.pipeline,
            person.unweighted_pipeline,
            person.quota,
        )
        for report in reports.get(rep_id, []):
            sub = team_totals(report.id)
            closed += sub[0]
            forecast += sub[1]
            pipeline += sub[2]
            unweighted += sub[3]
            quota += sub[4]
        in_progress.discard(rep_id)
        memo[rep_id] = (closed, forecast, pipeline, unweighted, quota)
        return memo[rep_id]

    rolled: List[RepTotals] = []
    for rep in reps:
        if not rep.is_manager:
            rolled.append(rep)
            continue
        closed, forecast, pipeline, unweighted, quota = team_totals(rep.id)
        rolled.append(
            replace(
                rep,
                closed=closed,
                forecast=forecast,
                pipeline=pipeline,
                unweighted_pipeline=unweighted,
                quota=quota,
            )
        )
    return rolled


def cascade(reps: List[RepTotals]) -> List[RepTotals]:
    """Depth-first order: alphabetical roots, then managers before reports at each level."""
    reports = _reports_index(reps)
    ordered: List[RepTotals] = []
    visited: Set[str] = set()

    def visit(rep: RepTotals, level: int) -> None:
        if rep.id in visited:
            return
        visited.add(rep.id)
        ordered.append(replace(rep, level=level))
        children = sorted(reports.get(rep.id, []), key=lambda child: (not child.is_manager, child.name.lower()))
        for child in children:
            visit(child, level + 1)

    for root in sorted((rep for rep in reps if not rep.manager_id), key=lambda rep: rep.name.lower()):
        visit(root, 0)
    # Reps whose manager is missing from the roster still get listed.
    for rep in reps:
        if rep.id not in visited:
            visited.add(rep.id)
            ordered.append(replace(rep, level=0))
    return ordered


def select_performance_source(
    dataset: SalesDataset,
    opportunities: List[Opportunity],
    filters: SalesFilters,
    today: date,
) -> PerformanceSource:
    year = reporting_year(filters, today)
    if any(row.year == year for row in dataset.performance_history):
        return HistoricalPerformanceSource(dataset.performance_history, year)
    return ComputedPerformanceSource(
        dataset.sales_roster, dataset.performance_history, opportunities, filters, year
    )


def build_salesperson_rollup(
    dataset: SalesDataset,
    opportunities: List[Opportunity],
    filters: SalesFilters,
    today: date,
    name_filter: Optional[str] = None,
    region_filter: Optional[str] = None,
    sort_field: Optional[str] = None,
    sort_direction: str = "desc",
) -> SalespeopleResponse:
    source = select_performance_source(dataset, opportunities, filters, today)
    rows = [to_row(rep) for rep in source.salespeople()]
    if name_filter:
        search = name_filter.lower()
        rows = [row for row in rows if search in row.name.lower()]
    if region_filter:
        rows = [row for row in rows if row.region == region_filter]
    rows = sort_by_field(rows, sort_field, sort_direction)
    return SalespeopleResponse(year=reporting_year(filters, today), mode=source.mode, salespeople=rows)


def attainment_color(attainment: int) -> str:
    if attainment >= 100:
        return "green"
    if attainment >= 75:
        return "yellow"
    if attainment > 0:
        return "red"
    return "gray"


def build_attainment_heatmap(salespeople: SalespeopleResponse) -> AttainmentHeatmapResponse:
    rows: List[HeatmapRow] = []
    for person in salespeople.salespeople:
        active_months = [value for value in person.monthly_attainment if value != 0]
        rows.append(
            HeatmapRow(
                id=person.id,
                name=person.name,
                region=person.region,
                is_manager=person.is_manager,
                level=person.level,
                months=[
                    HeatmapCell(month=label, attainment_pct=value, color=attainment_color(value))
                    for label, value in zip(MONTH_LABELS, person.monthly_attainment)
                ],
                avg_attainment=round(sum(active_months) / len(active_months)) if active_months else 0,
            )
        )
    return AttainmentHeatmapResponse(year=salespeople.year, month_labels=list(MONTH_LABELS), rows=rows)
