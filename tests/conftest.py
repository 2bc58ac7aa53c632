from __future__ import annotations

import os
from datetime import date
from typing import List

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")

from sales_analytics.analytics.opportunities import Opportunity, build_opportunities  # noqa: E402
from sales_analytics.api.dependencies import get_sales_analytics_service  # noqa: E402
from sales_analytics.main import create_app  # noqa: E402
from sales_analytics.models.sales import (  # noqa: E402
    CategoryMappingRecord,
    ClosedDealRecord,
    ContractMappingRecord,
    PipelineSnapshotRecord,
    SalesDataset,
    SalesRosterRecord,
    SubCategoryAttributionRecord,
)
from sales_analytics.services.sales_analytics_service import SalesAnalyticsService  # noqa: E402

REPORTING_DATE = date(2026, 6, 15)


def snapshot(month: str, deal_id: str, current_stage: str, license_acv: float, **overrides) -> PipelineSnapshotRecord:
    values = {
        "snapshot_month": month,
        "pipeline_deal_id": deal_id,
        "deal_name": f"Deal {deal_id}",
        "customer_name": f"Customer {deal_id}",
        "deal_value": license_acv * 2,
        "license_acv": license_acv,
        "implementation_value": 0,
        "logo_type": "New Logo",
        "deal_stage": current_stage,
        "current_stage": current_stage,
        "probability": 50,
        "expected_close_date": "2026-09-30",
        "created_date": "2026-01-15",
        "region": "North America",
        "vertical": "Banking",
        "segment": "Enterprise",
        "sales_rep": "Alice Smith",
    }
    values.update(overrides)
    return PipelineSnapshotRecord.model_validate(values)


def build_sales_dataset() -> SalesDataset:
    closed_deals = [
        ClosedDealRecord(
            closed_acv_id="C1",
            pipeline_deal_id="P-100",
            deal_name="Acme Platform",
            customer_name="Acme",
            close_date="2026-02-10",
            logo_type="New",
            value_type="License",
            license_acv="$1,000",
            implementation_value=500,
            region="NA",
            vertical="Insurance",
            segment="Enterprise",
            sales_rep="Alice Smith",
            sow_id="SOW-1",
            sold_by="Sales",
        ),
        ClosedDealRecord(
            closed_acv_id="C2",
            deal_name="Globex Renewal",
            customer_name="Globex",
            close_date="3/5/2025",
            logo_type="Renewal",
            license_acv=400,
            implementation_value=0,
            region="North America",
            vertical="Banking",
            segment="Enterprise",
            sales_rep="Bob Jones",
            sold_by="GD",
        ),
        ClosedDealRecord(
            closed_acv_id="C3",
            deal_name="Initech Upsell",
            customer_name="Initech",
            close_date="2026-05-20",
            logo_type="Upsell",
            license_acv=2000,
            implementation_value=0,
            region="North America",
            vertical="Banking",
            segment="Enterprise",
            sales_rep="Bob Jones",
            sold_by="Partner",
        ),
    ]
    pipeline_snapshots = [
        snapshot(
            "2026-04-01",
            "P-100",
            "Stage 7 - Contracting",
            800,
            probability=90,
            created_date="2025-11-01",
        ),
        snapshot("2026-04-01", "P-200", "Proposal", 300),
        snapshot(
            "2026-04-01",
            "P-300",
            "Closed Lost",
            100,
            probability=25,
            logo_type="Upsell",
            expected_close_date="2026-04-30",
            created_date="2026-01-01",
        ),
        snapshot("2026-05-01", "P-200", "Proposal", 450, deal_value=900, product_sub_category="Payments"),
        snapshot(
            "2026-05-01",
            "P-400",
            "Qualification",
            200,
            implementation_value=100,
            probability=20,
            deal_value=1500,
            logo_type="Renewal",
            expected_close_date="2026-11-15",
            created_date="2026-04-20",
            sales_rep="Bob Jones",
        ),
        snapshot(
            "2026-05-01",
            "P-500",
            "Stalled",
            60,
            probability=30,
            deal_value=200,
            logo_type="Cross Sell",
            expected_close_date="2026-08-01",
            created_date="2026-03-02",
            sales_rep="Carol Manager",
        ),
    ]
    return SalesDataset(
        closed_deals=closed_deals,
        pipeline_snapshots=pipeline_snapshots,
        contract_mappings=[
            ContractMappingRecord(
                sow_id="SOW-1",
                sow_name="Acme SOW",
                vertical="Banking",
                region="EU",
                revenue_type="License",
                segment_type="SMB",
            )
        ],
        subcategory_attributions=[
            SubCategoryAttributionRecord(sow_id="SOW-1", product_sub_category="Payments", year=2026, contribution_pct=60),
            SubCategoryAttributionRecord(sow_id="SOW-1", product_sub_category="Lending", year=2026, contribution_pct=40),
            SubCategoryAttributionRecord(sow_id="SOW-1", product_sub_category="Cards", year=2026, contribution_pct=0),
            SubCategoryAttributionRecord(sow_id="SOW-1", product_sub_category="Payments", year=2025, contribution_pct=100),
        ],
        category_mappings=[
            CategoryMappingRecord(product_sub_category="Payments", product_category="Core Banking"),
            CategoryMappingRecord(product_sub_category="Lending", product_category="Credit"),
        ],
        sales_roster=[
            SalesRosterRecord(sales_rep_id="R1", name="Carol Manager", region="North America", annual_quota=10000, status="Active"),
            SalesRosterRecord(
                sales_rep_id="R2", name="Alice Smith", region="Europe", manager_id="R1", annual_quota=3000, status="Active"
            ),
            SalesRosterRecord(
                sales_rep_id="R3", name="Bob Jones", region="North America", manager_id="R1", annual_quota=4000, status="Active"
            ),
            SalesRosterRecord(
                sales_rep_id="R4", name="Dan Former", region="North America", manager_id="R1", annual_quota=5000, status="Inactive"
            ),
        ],
    )


class FakeSalesDataRepository:
    def __init__(self, dataset: SalesDataset) -> None:
        self.dataset = dataset

    def load_dataset(self) -> SalesDataset:
        return self.dataset


@pytest.fixture()
def sales_dataset() -> SalesDataset:
    return build_sales_dataset()


@pytest.fixture()
def opportunities(sales_dataset: SalesDataset) -> List[Opportunity]:
    return build_opportunities(sales_dataset)


@pytest.fixture()
def today() -> date:
    return REPORTING_DATE


@pytest.fixture()
def client(sales_dataset: SalesDataset) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_sales_analytics_service] = lambda: SalesAnalyticsService(
        repository=FakeSalesDataRepository(sales_dataset),
        today=REPORTING_DATE,
        simulation_iterations=500,
        simulation_seed=7,
    )
    return TestClient(app)


@pytest.fixture()
def make_snapshot():
    return snapshot


@pytest.fixture()
def default_service(sales_dataset: SalesDataset) -> SalesAnalyticsService:
    return SalesAnalyticsService(repository=FakeSalesDataRepository(sales_dataset), today=REPORTING_DATE)
