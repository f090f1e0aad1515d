"""FastAPI host for the background ingestion and reconciliation loops.

Endpoints:
- GET /liveness: Process is up
- GET /readiness: Database and search index reachable
- GET /v1/status: Loop state and last cycle reports
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request

from document_service.background import BackgroundHost
from document_service.config import ServiceConfig
from document_service.db import check_db_connection, close_pool, get_pool
from document_service.logging_config import generate_request_id, setup_logging
from document_service.models import (
    BatchOutcomeModel,
    HealthResponse,
    InboxStatus,
    ReconciliationStatus,
    StatusResponse,
)
from document_service.service import build_host

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start both loops on startup; stop them and close pools on shutdown."""
    setup_logging(level=os.getenv("LOG_LEVEL", "INFO"))
    cfg = ServiceConfig.from_env()
    cfg.validate()
    await get_pool()

    host = build_host(cfg)
    app.state.host = host
    host.start()
    logger.info("Document service started")
    yield
    await host.stop()
    await close_pool()
    logger.info("Document service stopped")


app = FastAPI(
    title="Document Ingestion Service",
    version="0.1.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Attach a unique request ID for trace correlation."""
    request_id = request.headers.get("x-request-id") or generate_request_id()
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["x-request-id"] = request_id
    return response


def _host(request: Request) -> BackgroundHost | None:
    return getattr(request.app.state, "host", None)


# -- Health -------------------------------------------------------------------


@app.get("/liveness", response_model=HealthResponse)
async def liveness() -> HealthResponse:
    return HealthResponse(status="ok")


@app.get("/readiness", response_model=HealthResponse)
async def readiness(request: Request) -> HealthResponse:
    db_ok = await check_db_connection()
    if not db_ok:
        raise HTTPException(status_code=503, detail="Database unavailable")
    host = _host(request)
    if host is not None and host.reconciler is not None:
        if not await host.reconciler.indexer.is_healthy():
            return HealthResponse(status="degraded", error="Search index unavailable")
    return HealthResponse(status="ok")


# -- Status -------------------------------------------------------------------


@app.get("/v1/status", response_model=StatusResponse)
async def status(request: Request) -> StatusResponse:
    host = _host(request)
    if host is None:
        raise HTTPException(status_code=503, detail="Background host not started")

    inbox = None
    if host.inbox is not None:
        last = host.inbox.last_outcome
        inbox = InboxStatus(
            enabled=host.inbox.config.enabled,
            state=host.inbox.state.value,
            inbox_container=host.inbox.config.inbox_container,
            last_cycle=BatchOutcomeModel.from_outcome(last) if last else None,
        )

    reconciliation = None
    if host.reconciler is not None:
        reconciliation = ReconciliationStatus.from_report(
            host.reconciler.config.enabled, host.reconciler.last_report
        )

    return StatusResponse(running=host.running, inbox=inbox, reconciliation=reconciliation)
