"""Shared pytest fixtures for lares tests.

Fixture summary
---------------
engine      — Async SQLAlchemy engine over a temporary SQLite file, tables created.
store       — :class:`lares.core.store.Store` bound to ``engine``.
settings    — :class:`Settings` pointing at the same file, ignoring any ``.env``.

Every test gets its own database file under ``tmp_path``; no external
infrastructure is required.  HTTP traffic is mocked with respx.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from lares.config.settings import Settings, get_settings
from lares.core.database import build_engine, build_session_factory, create_schema
from lares.core.store import Store


@pytest.fixture
def database_path(tmp_path: Path) -> Path:
    return tmp_path / "lares.db"


@pytest_asyncio.fixture
async def engine(database_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Engine over a fresh SQLite file with all tables created."""
    test_engine = build_engine(f"sqlite+aiosqlite:///{database_path}")
    await create_schema(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def store(engine: AsyncEngine) -> Store:
    return Store(build_session_factory(engine))


@pytest.fixture
def settings(database_path: Path) -> Settings:
    return Settings(_env_file=None, database=str(database_path))


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Generator[None, None, None]:
    """Clear the cached Settings so env changes in one test do not leak."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
