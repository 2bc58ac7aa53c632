from __future__ import annotations

import argparse
import csv
import os
import re
import sys
from typing import Any, Callable, Dict, Iterable, List, Optional

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.abspath(os.path.join(SCRIPT_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from sales_analytics.shared.normalize import (  # noqa: E402
    normalize_logo_type,
    normalize_numeric_id,
    normalize_text,
    parse_number,
)
from sales_analytics.shared.time import parse_local_date  # noqa: E402

CONTRIBUTION_COLUMN = re.compile(r"^(\d{4})_Contribution_Pct$")


def load_env_file(env_path: str) -> None:
    if not os.path.exists(env_path):
        return
    with open(env_path, "r", encoding="utf-8") as env_file:
        for line in env_file:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            os.environ.setdefault(key, value)


def pick(row: Dict[str, str], *keys: str) -> Optional[str]:
    for key in keys:
        if key in row:
            value = row.get(key)
            if value is not None and value != "":
                return value
    return None


def normalize_date(value: Optional[str]) -> Optional[str]:
    parsed = parse_local_date(value)
    return parsed.isoformat() if parsed else None


def normalize_int(value: Optional[str]) -> Optional[int]:
    text = normalize_text(value)
    return int(parse_number(text)) if text else None


def chunk_rows(rows: Iterable[Dict[str, Any]], size: int) -> Iterable[List[Dict[str, Any]]]:
    batch: List[Dict[str, Any]] = []
    for row in rows:
        batch.append(row)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


def build_closed_deal_payload(row: Dict[str, str]) -> List[Dict[str, Any]]:
    closed_acv_id = normalize_text(pick(row, "Closed_ACV_ID"))
    if not closed_acv_id:
        return []
    return [
        {
            "closed_acv_id": closed_acv_id,
            "pipeline_deal_id": normalize_numeric_id(pick(row, "Pipeline_Deal_ID")),
            "deal_name": normalize_text(pick(row, "Deal_Name")),
            "customer_name": normalize_text(pick(row, "Customer_Name")),
            "close_date": normalize_date(pick(row, "Close_Date")),
            "logo_type": normalize_logo_type(pick(row, "Logo_Type")),
            "value_type": normalize_text(pick(row, "Value_Type")),
            "amount": parse_number(pick(row, "Amount")),
            "license_acv": parse_number(pick(row, "License_ACV")),
            "implementation_value": parse_number(pick(row, "Implementation_Value")),
            "region": normalize_text(pick(row, "Region")),
            "vertical": normalize_text(pick(row, "Vertical")),
            "segment": normalize_text(pick(row, "Segment")),
            "sales_rep": normalize_text(pick(row, "Sales_Rep")),
            "sow_id": normalize_numeric_id(pick(row, "SOW_ID")),
            "sold_by": normalize_text(pick(row, "Sold By", "Sold_By")) or "Sales",
        }
    ]


def build_pipeline_snapshot_payload(row: Dict[str, str]) -> List[Dict[str, Any]]:
    snapshot_month = normalize_date(pick(row, "Snapshot_Month"))
    deal_id = normalize_numeric_id(pick(row, "Pipeline_Deal_ID"))
    if not snapshot_month or not deal_id:
        return []
    return [
        {
            "snapshot_month": snapshot_month,
            "pipeline_deal_id": deal_id,
            "deal_name": normalize_text(pick(row, "Deal_Name")),
            "customer_name": normalize_text(pick(row, "Customer_Name")),
            "deal_value": parse_number(pick(row, "Deal_Value")),
            "license_acv": parse_number(pick(row, "License_ACV")),
            "implementation_value": parse_number(pick(row, "Implementation_Value")),
            "logo_type": normalize_logo_type(pick(row, "Logo_Type")),
            "deal_stage": normalize_text(pick(row, "Deal_Stage")),
            "current_stage": normalize_text(pick(row, "Current_Stage")),
            "probability": parse_number(pick(row, "Probability")),
            "expected_close_date": normalize_date(pick(row, "Expected_Close_Date")),
            "created_date": normalize_date(pick(row, "Created_Date")),
            "region": normalize_text(pick(row, "Region")),
            "vertical": normalize_text(pick(row, "Vertical")),
            "segment": normalize_text(pick(row, "Segment")),
            "product_sub_category": normalize_text(pick(row, "Product_Sub_Category")),
            "sales_rep": normalize_text(pick(row, "Sales_Rep")),
        }
    ]


def build_sow_mapping_payload(row: Dict[str, str]) -> List[Dict[str, Any]]:
    sow_id = normalize_numeric_id(pick(row, "SOW_ID"))
    if not sow_id:
        return []
    return [
        {
            "sow_id": sow_id,
            "sow_name": normalize_text(pick(row, "SOW Name", "SOW_Name")),
            "vertical": normalize_text(pick(row, "Vertical")),
            "region": normalize_text(pick(row, "Region")),
            "fees_type": normalize_text(pick(row, "Fees_Type")),
            "revenue_type": normalize_text(pick(row, "Revenue_Type")),
            "segment_type": normalize_text(pick(row, "Segment_Type")),
        }
    ]


def build_subcategory_payload(row: Dict[str, str]) -> List[Dict[str, Any]]:
    """One wide row (``2024_Contribution_Pct`` ...) becomes one row per year."""
    sow_id = normalize_numeric_id(pick(row, "SOW_ID"))
    sub_category = normalize_text(pick(row, "Product_Sub_Category"))
    if not sow_id or not sub_category:
        return []
    payloads: List[Dict[str, Any]] = []
    for column, raw in row.items():
        match = CONTRIBUTION_COLUMN.match((column or "").strip())
        if not match:
            continue
        payloads.append(
            {
                "sow_id": sow_id,
                "customer_name": normalize_text(pick(row, "Customer_Name")),
                "product_sub_category": sub_category,
                "year": int(match.group(1)),
                "contribution_pct": parse_number(raw),
            }
        )
    return payloads


def build_category_mapping_payload(row: Dict[str, str]) -> List[Dict[str, Any]]:
    sub_category = normalize_text(pick(row, "Product_Sub_Category"))
    if not sub_category:
        return []
    return [
        {
            "product_sub_category": sub_category,
            "product_category": normalize_text(pick(row, "Product_Category")),
        }
    ]


def build_sales_team_payload(row: Dict[str, str]) -> List[Dict[str, Any]]:
    rep_id = normalize_text(pick(row, "Sales_Rep_ID"))
    if not rep_id:
        return []
    return [
        {
            "sales_rep_id": rep_id,
            "name": normalize_text(pick(row, "Name")),
            "role": normalize_text(pick(row, "Role")),
            "region": normalize_text(pick(row, "Region")),
            "manager_id": normalize_text(pick(row, "Manager_ID")),
            "annual_quota": parse_number(pick(row, "Annual_Quota")),
            "status": normalize_text(pick(row, "Status")),
        }
    ]


def build_performance_payload(row: Dict[str, str]) -> List[Dict[str, Any]]:
    rep_id = normalize_text(pick(row, "Sales_Rep_ID"))
    year = normalize_int(pick(row, "Year"))
    if not rep_id or year is None:
        return []
    return [
        {
            "year": year,
            "sales_rep_id": rep_id,
            "sales_rep_name": normalize_text(pick(row, "Sales_Rep_Name", "Name")),
            "region": normalize_text(pick(row, "Region")),
            "annual_quota": parse_number(pick(row, "Annual_Quota")),
            "q1_closed": parse_number(pick(row, "Q1_Closed")),
            "q2_closed": parse_number(pick(row, "Q2_Closed")),
            "q3_closed": parse_number(pick(row, "Q3_Closed")),
            "q4_closed": parse_number(pick(row, "Q4_Closed")),
            "total_closed": parse_number(pick(row, "Total_Closed")),
        }
    ]


DATASETS: Dict[str, tuple[str, str, Callable[[Dict[str, str]], List[Dict[str, Any]]]]] = {
    "closed_acv": ("closed_acv", "closed_acv_id", build_closed_deal_payload),
    "pipeline": ("pipeline_snapshots", "snapshot_month,pipeline_deal_id", build_pipeline_snapshot_payload),
    "sow_mapping": ("sow_mappings", "sow_id", build_sow_mapping_payload),
    "subcategory": (
        "arr_subcategory_breakdown",
        "sow_id,product_sub_category,year",
        build_subcategory_payload,
    ),
    "product_category": ("product_category_mappings", "product_sub_category", build_category_mapping_payload),
    "sales_team": ("sales_team", "sales_rep_id", build_sales_team_payload),
    "performance": ("sales_performance_history", "year,sales_rep_id", build_performance_payload),
}


def build_payloads(
    rows: Iterable[Dict[str, str]], builder: Callable[[Dict[str, str]], List[Dict[str, Any]]]
) -> Iterable[Dict[str, Any]]:
    for row in rows:
        if not row:
            continue
        yield from builder(row)


def main() -> None:
    parser = argparse.ArgumentParser(description="Upsert sales source CSV exports via Supabase REST API.")
    parser.add_argument("dataset", choices=sorted(DATASETS), help="Which source table the CSV feeds")
    parser.add_argument("csv_path", help="Path to the CSV export")
    parser.add_argument("--batch-size", type=int, default=500, help="Rows per request batch")
    parser.add_argument(
        "--start-row",
        type=int,
        default=0,
        help="Row index to resume from (0-based, excluding header)",
    )
    parser.add_argument(
        "--env-file",
        default=os.path.join(PROJECT_ROOT, ".env"),
        help="Path to .env file",
    )
    args = parser.parse_args()

    load_env_file(os.path.abspath(args.env_file))

    from sales_analytics.core.supabase import SupabaseClient

    table, on_conflict, builder = DATASETS[args.dataset]
    client = SupabaseClient()

    uploaded_rows = 0
    with open(args.csv_path, "r", encoding="utf-8-sig", newline="") as csv_file:
        reader = csv.DictReader(csv_file)
        for _ in range(args.start_row):
            next(reader, None)
        payloads = build_payloads(reader, builder)
        for index, batch in enumerate(chunk_rows(payloads, args.batch_size), start=1):
            client.insert(table, batch, upsert=True, on_conflict=on_conflict)
            uploaded_rows += len(batch)
            print(f"Uploaded batch {index} ({len(batch)} rows)")
    print(f"{table} upsert complete. Rows uploaded: {uploaded_rows}")


if __name__ == "__main__":
    main()
