"""Health check route.

``GET /health``
    Liveness plus a ``SELECT 1`` against the store, and the number of feeds
    the run-loop is crawling right now.  Always returns HTTP 200; the
    ``status`` field distinguishes ``"ok"`` from ``"degraded"``.

This endpoint is diagnostic and must never raise HTTP 5xx errors.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import APIRouter

from lares.api.dependencies import ManagerDep, SchedulerDep
from lares.core.exceptions import StoreError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


@router.get("/health")
async def health(manager: ManagerDep, scheduler: SchedulerDep) -> dict:
    """Return process and database status.

    Returns:
        ``{"status", "database", "crawling", "timestamp"}``.  ``crawling``
        is ``None`` when the API runs without the run-loop.
    """
    try:
        await manager.store.ping()
        database = "ok"
    except StoreError:
        logger.exception("Health check: database unreachable")
        database = "error"

    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "crawling": len(scheduler.in_flight) if scheduler is not None else None,
        "timestamp": datetime.now(UTC).isoformat(),
    }
