"""FastAPI application factory for the welfare gateway"""

import logging

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.responses import Response

from welfare_gateway.api.middleware import MetricsMiddleware, RequestIDMiddleware
from welfare_gateway.api.v1 import categories, ledger, requests
from welfare_gateway.config import settings
from welfare_gateway.infrastructure.database.session import get_db
from welfare_gateway.infrastructure.observability.logging import setup_logging

setup_logging(settings.log_level, settings.service_name)

logger = logging.getLogger(__name__)

ROUTERS = (
    (requests.router, "requests"),
    (ledger.router, "ledger"),
    (categories.router, "categories"),
)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Student Welfare Fund Gateway",
        description="Financial-aid review pipeline and welfare fund ledger",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Starlette runs the last-added middleware first: request ID is set before timing starts
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check(db: Session = Depends(get_db)):
        """Liveness plus a database round trip"""
        try:
            db.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return JSONResponse(
                status_code=503,
                content={"status": "degraded", "service": settings.service_name, "database": "unavailable"},
            )
        return {"status": "ok", "service": settings.service_name, "database": "ok"}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    for router, tag in ROUTERS:
        app.include_router(router, prefix="/v1", tags=[tag])

    return app


app = create_app()
