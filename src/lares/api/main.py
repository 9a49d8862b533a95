"""FastAPI application factory.

Creates the application instance, registers the request-logging middleware
and the error-to-status mapping, and mounts the feed, group and health
routers.

Usage::

    # Standalone management API, no crawl run-loop (from project root)
    uvicorn lares.api.main:create_app --factory --reload

    # API and crawler in one process
    lares server -H 0.0.0.0 -p 4000
"""

from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

import structlog
from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from lares import __version__
from lares.api.dependencies import require_auth
from lares.config.settings import Settings, get_settings
from lares.core.database import build_engine, build_session_factory, create_schema
from lares.core.exceptions import (
    AlreadyExistsError,
    CrawlInProgressError,
    FeedError,
    LaresError,
    NotFoundError,
    StoreError,
)
from lares.core.logging_config import configure_logging, request_id_var
from lares.core.management import FeedManager
from lares.core.store import Store
from lares.crawler.scheduler import CrawlScheduler

logger = structlog.get_logger(__name__)

# Checked in order; the first matching class wins.
_ERROR_STATUS: tuple[tuple[type[LaresError], int], ...] = (
    (NotFoundError, 404),
    (AlreadyExistsError, 409),
    (CrawlInProgressError, 409),
    (FeedError, 502),
    (StoreError, 503),
)


def _status_for(exc: LaresError) -> int:
    for error_class, status_code in _ERROR_STATUS:
        if isinstance(exc, error_class):
            return status_code
    return 500


async def _lares_error_handler(request: Request, exc: LaresError) -> JSONResponse:
    status_code = _status_for(exc)
    log_fn = logger.error if status_code >= 500 else logger.info
    log_fn("request_failed", error=type(exc).__name__, detail=str(exc), status_code=status_code)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[Store] = None,
    scheduler: Optional[CrawlScheduler] = None,
    manager: Optional[FeedManager] = None,
) -> FastAPI:
    """Build and configure the FastAPI application.

    Args:
        settings: Settings to use; ``get_settings()`` when omitted.
        store: Shared store.  When omitted the app builds its own engine
            from ``settings.database_url``, creates missing tables on
            startup and disposes the engine on shutdown.
        scheduler: The running crawl scheduler.  Manual crawls go through
            its in-flight tracking when given.
        manager: Management facade; built over *store* when omitted.

    Returns:
        A fully configured ``FastAPI`` instance.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    engine = None
    if store is None:
        engine = build_engine(settings.database_url, echo=settings.debug)
        store = Store(build_session_factory(engine))

    if manager is None:
        manager = FeedManager(
            store,
            timeout=settings.fetch_timeout_seconds,
            user_agent=settings.user_agent,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if engine is not None:
            await create_schema(engine)
        logger.info(
            "application_startup",
            app_name=settings.app_name,
            auth_enabled=settings.auth_enabled,
            scheduler=scheduler is not None,
        )
        try:
            yield
        finally:
            logger.info("application_shutdown")
            if engine is not None:
                await engine.dispose()

    application = FastAPI(
        title=settings.app_name,
        description="Management API for the lares feed aggregator.",
        version=__version__,
        debug=settings.debug,
        redirect_slashes=False,
        lifespan=lifespan,
        dependencies=[Depends(require_auth)],
    )
    application.state.settings = settings
    application.state.store = store
    application.state.manager = manager
    application.state.scheduler = scheduler

    # ---- Request logging middleware ----------------------------------------

    @application.middleware("http")
    async def request_logging_middleware(
        request: Request, call_next: Callable
    ) -> Response:
        """Log every request with its status and duration.

        Attaches a unique ``request_id`` to the structlog context so that all
        log lines emitted during a request can be correlated.
        """
        request_id = str(uuid.uuid4())
        request_id_var.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("unhandled_exception", exc_info=exc)
            raise
        finally:
            elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = getattr(response, "status_code", 500)
            log_fn = logger.warning if status_code >= 400 else logger.info
            log_fn(
                "request_complete",
                status_code=status_code,
                elapsed_ms=elapsed_ms,
            )

        response.headers["X-Request-ID"] = request_id
        return response

    # ---- Error mapping ---------------------------------------------------------

    application.add_exception_handler(LaresError, _lares_error_handler)

    # ---- Routers -----------------------------------------------------------------

    from lares.api.routes import feeds, groups, health  # noqa: PLC0415

    application.include_router(health.router)
    application.include_router(feeds.router, prefix="/feeds", tags=["feeds"])
    application.include_router(groups.router, prefix="/groups", tags=["groups"])

    return application
