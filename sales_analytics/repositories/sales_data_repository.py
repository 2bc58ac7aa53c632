from __future__ import annotations

import logging
from typing import List, Type, TypeVar

import httpx
from pydantic import ValidationError

from sales_analytics.core.errors import ServiceUnavailableError
from sales_analytics.core.supabase import SupabaseClient
from sales_analytics.models.sales import (
    CategoryMappingRecord,
    ClosedDealRecord,
    ContractMappingRecord,
    PerformanceHistoryRecord,
    PipelineSnapshotRecord,
    SalesDataset,
    SalesRosterRecord,
    SourceRecord,
    SubCategoryAttributionRecord,
)

logger = logging.getLogger(__name__)

MAX_QUERY_ROWS = 1000

RecordT = TypeVar("RecordT", bound=SourceRecord)


class SalesDataRepository:
    def __init__(self) -> None:
        self.client = SupabaseClient()

    def load_dataset(self) -> SalesDataset:
        try:
            dataset = SalesDataset(
                closed_deals=self._read("closed_acv", ClosedDealRecord, "close_date.asc"),
                pipeline_snapshots=self._read(
                    "pipeline_snapshots", PipelineSnapshotRecord, "snapshot_month.asc,pipeline_deal_id.asc"
                ),
                contract_mappings=self._read("sow_mappings", ContractMappingRecord, "sow_id.asc"),
                subcategory_attributions=self._read(
                    "arr_subcategory_breakdown", SubCategoryAttributionRecord, "sow_id.asc,year.asc"
                ),
                category_mappings=self._read(
                    "product_category_mappings", CategoryMappingRecord, "product_sub_category.asc"
                ),
                sales_roster=self._read("sales_team", SalesRosterRecord, "sales_rep_id.asc"),
                performance_history=self._read(
                    "sales_performance_history", PerformanceHistoryRecord, "year.asc,sales_rep_id.asc"
                ),
            )
        except httpx.HTTPError as exc:
            logger.error("Sales source tables unavailable: %s", exc)
            raise ServiceUnavailableError("Sales data source is unavailable") from exc

        logger.info(
            "Loaded sales dataset: closed=%s snapshots=%s mappings=%s attributions=%s roster=%s history=%s",
            len(dataset.closed_deals),
            len(dataset.pipeline_snapshots),
            len(dataset.contract_mappings),
            len(dataset.subcategory_attributions),
            len(dataset.sales_roster),
            len(dataset.performance_history),
        )
        return dataset

    def _read(self, table: str, model: Type[RecordT], order: str) -> List[RecordT]:
        rows = self.client.select_all(table=table, select="*", page_size=MAX_QUERY_ROWS, order=order)
        records: List[RecordT] = []
        skipped = 0
        for row in rows:
            try:
                records.append(model.model_validate(row))
            except ValidationError:
                skipped += 1
        if skipped:
            logger.warning("Skipped %s invalid rows from %s", skipped, table)
        return records
