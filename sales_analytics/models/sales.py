from __future__ import annotations

from typing import Annotated, List

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from sales_analytics.shared.normalize import normalize_logo_type, normalize_text, parse_number

Text = Annotated[str, BeforeValidator(normalize_text)]
Amount = Annotated[float, BeforeValidator(parse_number)]
LogoType = Annotated[str, BeforeValidator(normalize_logo_type)]


class SourceRecord(BaseModel):
    # Source rows are read-only for the engine.
    model_config = ConfigDict(frozen=True, extra="ignore")


class ClosedDealRecord(SourceRecord):
    closed_acv_id: Text = ""
    pipeline_deal_id: Text = ""
    deal_name: Text = ""
    customer_name: Text = ""
    close_date: Text = ""
    logo_type: LogoType = ""
    value_type: Text = ""
    amount: Amount = 0.0
    license_acv: Amount = 0.0
    implementation_value: Amount = 0.0
    region: Text = ""
    vertical: Text = ""
    segment: Text = ""
    sales_rep: Text = ""
    sow_id: Text = ""
    sold_by: Text = "Sales"


class PipelineSnapshotRecord(SourceRecord):
    snapshot_month: Text = ""
    pipeline_deal_id: Text = ""
    deal_name: Text = ""
    customer_name: Text = ""
    deal_value: Amount = 0.0
    license_acv: Amount = 0.0
    implementation_value: Amount = 0.0
    logo_type: LogoType = ""
    deal_stage: Text = ""
    current_stage: Text = ""
    probability: Amount = 0.0
    expected_close_date: Text = ""
    created_date: Text = ""
    region: Text = ""
    vertical: Text = ""
    segment: Text = ""
    product_sub_category: Text = ""
    sales_rep: Text = ""


class ContractMappingRecord(SourceRecord):
    sow_id: Text = ""
    sow_name: Text = ""
    vertical: Text = ""
    region: Text = ""
    fees_type: Text = ""
    revenue_type: Text = ""
    segment_type: Text = ""


class SubCategoryAttributionRecord(SourceRecord):
    sow_id: Text = ""
    customer_name: Text = ""
    product_sub_category: Text = ""
    year: int
    contribution_pct: Amount = 0.0


class CategoryMappingRecord(SourceRecord):
    product_sub_category: Text = ""
    product_category: Text = ""


class SalesRosterRecord(SourceRecord):
    sales_rep_id: Text = ""
    name: Text = ""
    role: Text = ""
    region: Text = ""
    manager_id: Text = ""
    annual_quota: Amount = 0.0
    status: Text = ""


class PerformanceHistoryRecord(SourceRecord):
    year: int
    sales_rep_id: Text = ""
    sales_rep_name: Text = ""
    region: Text = ""
    annual_quota: Amount = 0.0
    q1_closed: Amount = 0.0
    q2_closed: Amount = 0.0
    q3_closed: Amount = 0.0
    q4_closed: Amount = 0.0
    total_closed: Amount = 0.0


class SalesDataset(BaseModel):
    model_config = ConfigDict(frozen=True)

    closed_deals: List[ClosedDealRecord] = Field(default_factory=list)
    pipeline_snapshots: List[PipelineSnapshotRecord] = Field(default_factory=list)
    contract_mappings: List[ContractMappingRecord] = Field(default_factory=list)
    subcategory_attributions: List[SubCategoryAttributionRecord] = Field(default_factory=list)
    category_mappings: List[CategoryMappingRecord] = Field(default_factory=list)
    sales_roster: List[SalesRosterRecord] = Field(default_factory=list)
    performance_history: List[PerformanceHistoryRecord] = Field(default_factory=list)

    def category_index(self) -> dict[str, str]:
        return {
            mapping.product_sub_category: mapping.product_category
            for mapping in self.category_mappings
            if mapping.product_sub_category
        }
