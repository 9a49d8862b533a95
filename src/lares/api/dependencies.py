"""FastAPI dependency providers.

The app factory stores the shared objects on ``app.state``; these
dependencies hand them to route handlers:

    get_manager      — the :class:`~lares.core.management.FeedManager`
    get_scheduler    — the running :class:`~lares.crawler.scheduler.CrawlScheduler`,
                       or ``None`` when the API runs without a run-loop
    require_auth     — HTTP Basic check, a no-op unless credentials are configured
"""

from __future__ import annotations

import secrets
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from lares.config.settings import Settings
from lares.core.management import FeedManager
from lares.crawler.scheduler import CrawlScheduler

_basic = HTTPBasic(auto_error=False)


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_manager(request: Request) -> FeedManager:
    return request.app.state.manager


def get_scheduler(request: Request) -> Optional[CrawlScheduler]:
    return getattr(request.app.state, "scheduler", None)


async def require_auth(
    settings: Annotated[Settings, Depends(get_settings_dep)],
    credentials: Annotated[Optional[HTTPBasicCredentials], Depends(_basic)],
) -> None:
    """Reject the request unless it carries the configured Basic credentials.

    Raises:
        HTTPException 401: When authentication is enabled and the request
            has no credentials or wrong ones.
    """
    if not settings.auth_enabled:
        return
    if credentials is not None:
        user_ok = secrets.compare_digest(
            credentials.username.encode("utf-8"), str(settings.username).encode("utf-8")
        )
        password_ok = secrets.compare_digest(
            credentials.password.encode("utf-8"), str(settings.password).encode("utf-8")
        )
        if user_ok and password_ok:
            return
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials",
        headers={"WWW-Authenticate": "Basic"},
    )


ManagerDep = Annotated[FeedManager, Depends(get_manager)]
SchedulerDep = Annotated[Optional[CrawlScheduler], Depends(get_scheduler)]
