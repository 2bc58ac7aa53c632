from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from sales_analytics.analytics.filters import LICENSE_ACV_LOGO_TYPES
from sales_analytics.analytics.stages import DealStatus, StageKind, parse_stage
from sales_analytics.models.sales import (
    ClosedDealRecord,
    ContractMappingRecord,
    PipelineSnapshotRecord,
    SalesDataset,
    SubCategoryAttributionRecord,
)
from sales_analytics.shared.normalize import normalize_region
from sales_analytics.shared.time import month_key, parse_local_date

logger = logging.getLogger(__name__)

UNALLOCATED = "Unallocated"
SOLD_BY_VALUES = ("Sales", "GD", "TSO")


class SubCategoryShare(BaseModel):
    model_config = ConfigDict(frozen=True)

    sub_category: str
    category: str
    pct: float
    value: float


class Opportunity(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    account_name: str
    region: str
    vertical: str
    segment: str
    stage: str
    stage_kind: StageKind
    probability: float = Field(ge=0, le=100)
    deal_value: float
    license_value: float
    implementation_value: float
    weighted_value: float
    expected_close_date: Optional[date] = None
    owner: str
    status: DealStatus
    logo_type: str
    closed_acv: float = 0.0
    sold_by: str = "Sales"
    sow_id: Optional[str] = None
    product_sub_category: str = UNALLOCATED
    product_category: str = UNALLOCATED
    subcategory_breakdown: List[SubCategoryShare] = Field(default_factory=list)
    revenue_type: str = "License"

    @property
    def is_open(self) -> bool:
        return self.status in (DealStatus.ACTIVE, DealStatus.STALLED)

    @property
    def close_year(self) -> Optional[int]:
        return self.expected_close_date.year if self.expected_close_date else None


def build_opportunities(dataset: SalesDataset) -> List[Opportunity]:
    """Closed deals as Won plus the open/lost pipeline of the latest snapshot month."""
    category_index = dataset.category_index()
    contract_index: Dict[str, ContractMappingRecord] = {
        mapping.sow_id: mapping for mapping in dataset.contract_mappings if mapping.sow_id
    }
    attributions: Dict[str, List[SubCategoryAttributionRecord]] = defaultdict(list)
    for attribution in dataset.subcategory_attributions:
        attributions[attribution.sow_id].append(attribution)

    opportunities = [
        _build_closed_opportunity(row, contract_index, attributions, category_index)
        for row in dataset.closed_deals
    ]
    opportunities.extend(_build_pipeline_opportunities(dataset.pipeline_snapshots, category_index))
    return opportunities


def latest_snapshot_month(snapshots: List[PipelineSnapshotRecord]) -> Optional[str]:
    months = [key for key in (month_key(row.snapshot_month) for row in snapshots) if key]
    return max(months) if months else None


def _build_closed_opportunity(
    row: ClosedDealRecord,
    contract_index: Dict[str, ContractMappingRecord],
    attributions: Dict[str, List[SubCategoryAttributionRecord]],
    category_index: Dict[str, str],
) -> Opportunity:
    mapping = contract_index.get(row.sow_id) if row.sow_id else None
    region = (normalize_region(mapping.region) if mapping else "") or normalize_region(row.region)
    vertical = (mapping.vertical if mapping else "") or row.vertical
    segment = (mapping.segment_type if mapping else "") or row.segment or "Enterprise"

    license_value = row.license_acv
    implementation_value = row.implementation_value
    total_value = license_value + implementation_value
    license_counts = row.logo_type in LICENSE_ACV_LOGO_TYPES
    closed_acv = (license_value if license_counts else 0.0) + implementation_value

    close_date = parse_local_date(row.close_date)
    breakdown: List[SubCategoryShare] = []
    if row.sow_id and close_date is not None:
        breakdown = _subcategory_breakdown(
            attributions.get(row.sow_id, []), close_date.year, closed_acv, category_index
        )
    primary = max(breakdown, key=lambda share: share.pct) if breakdown else None

    return Opportunity(
        id=row.closed_acv_id,
        name=row.deal_name,
        account_name=row.customer_name,
        region=region,
        vertical=vertical,
        segment="SMB" if segment == "SMB" else "Enterprise",
        stage=StageKind.CLOSED_WON.value,
        stage_kind=StageKind.CLOSED_WON,
        probability=100,
        deal_value=total_value or row.amount,
        license_value=license_value,
        implementation_value=implementation_value,
        weighted_value=total_value or row.amount,
        expected_close_date=close_date,
        owner=row.sales_rep,
        status=DealStatus.WON,
        logo_type=row.logo_type or "Upsell",
        closed_acv=closed_acv,
        sold_by=row.sold_by if row.sold_by in SOLD_BY_VALUES else "Sales",
        sow_id=row.sow_id or None,
        product_sub_category=primary.sub_category if primary else UNALLOCATED,
        product_category=primary.category if primary else UNALLOCATED,
        subcategory_breakdown=breakdown,
        revenue_type=(mapping.revenue_type if mapping else "") or row.value_type or "License",
    )


def _subcategory_breakdown(
    rows: List[SubCategoryAttributionRecord],
    close_year: int,
    closed_acv: float,
    category_index: Dict[str, str],
) -> List[SubCategoryShare]:
    if not rows:
        return []
    years = {row.year for row in rows}
    # A contract without a split for the close year uses its most recent split.
    year = close_year if close_year in years else max(years)
    return [
        SubCategoryShare(
            sub_category=row.product_sub_category,
            category=category_index.get(row.product_sub_category, UNALLOCATED),
            pct=row.contribution_pct,
            value=round(closed_acv * row.contribution_pct / 100),
        )
        for row in rows
        if row.year == year and row.contribution_pct > 0
    ]


def _build_pipeline_opportunities(
    snapshots: List[PipelineSnapshotRecord], category_index: Dict[str, str]
) -> List[Opportunity]:
    latest = latest_snapshot_month(snapshots)
    if latest is None:
        return []

    deals: Dict[str, PipelineSnapshotRecord] = {}
    skipped = 0
    generated = 0
    for row in snapshots:
        key = month_key(row.snapshot_month)
        if key is None:
            skipped += 1
            continue
        if key != latest:
            continue
        deal_id = row.pipeline_deal_id
        if not deal_id:
            generated += 1
            deal_id = f"PIP-{generated:04d}"
        deals[deal_id] = row
    if skipped:
        logger.debug("Skipped %s pipeline rows without a usable snapshot month", skipped)

    opportunities: List[Opportunity] = []
    for deal_id, row in deals.items():
        parsed = parse_stage(row.current_stage)
        status = parsed.status
        if status is DealStatus.WON:
            continue
        lost = status is DealStatus.LOST
        sub_category = row.product_sub_category or UNALLOCATED
        opportunities.append(
            Opportunity(
                id=deal_id,
                name=row.deal_name,
                account_name=row.customer_name,
                region=row.region or "North America",
                vertical=row.vertical or "Other Services",
                segment="SMB" if row.segment == "SMB" else "Enterprise",
                stage=StageKind.CLOSED_LOST.value if lost else (row.deal_stage or "Prospecting"),
                stage_kind=parsed.kind,
                probability=0 if lost else min(max(row.probability, 0), 100),
                deal_value=row.deal_value,
                license_value=row.license_acv,
                implementation_value=row.implementation_value,
                weighted_value=row.license_acv + row.implementation_value,
                expected_close_date=parse_local_date(row.expected_close_date),
                owner=row.sales_rep,
                status=status,
                logo_type=row.logo_type or "New Logo",
                closed_acv=0.0,
                sold_by="Sales",
                product_sub_category=sub_category,
                product_category=(
                    category_index.get(sub_category, UNALLOCATED)
                    if row.product_sub_category
                    else UNALLOCATED
                ),
                revenue_type="License",
            )
        )
    return opportunities
