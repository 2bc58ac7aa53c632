from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from sales_analytics.api.router import api_router
from sales_analytics.core.config import get_cors_origins, get_settings
from sales_analytics.core.errors import AppError, app_error_handler, validation_error_handler
from sales_analytics.core.logging import configure_logging

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title=settings.app_name)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.include_router(api_router, prefix=settings.api_prefix)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    if settings.reporting_date:
        logger.info("Reporting date pinned to %s", settings.reporting_date.isoformat())
    return app


app = create_app()
