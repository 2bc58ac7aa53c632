from __future__ import annotations

from datetime import date

from fastapi import APIRouter

from sales_analytics.core.config import get_settings
from sales_analytics.shared.response import ResponseEnvelope, build_meta


router = APIRouter(tags=["health"])


@router.get("/health")
def health_check() -> ResponseEnvelope[dict]:
    settings = get_settings()
    reporting_date = settings.reporting_date or date.today()
    data = {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.environment,
    }
    meta = build_meta(source="system", time_window="now", reporting_date=reporting_date)
    return ResponseEnvelope(data=data, meta=meta)


@router.get("/healthz")
def health_check_liveness() -> ResponseEnvelope[dict]:
    return ResponseEnvelope(data={"status": "ok"}, meta=build_meta(source="system", time_window="now"))
