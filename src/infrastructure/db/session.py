"""Process-wide async engine and session factory, created lazily from settings."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from src.core.config import get_settings

logger = structlog.get_logger()

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def engine_options(url: str, *, echo: bool = False) -> dict[str, Any]:
    """Engine keyword arguments for ``url``; SQLite takes no pool health checks."""
    options: dict[str, Any] = {"echo": echo, "future": True}
    if not url.startswith("sqlite"):
        options["pool_pre_ping"] = True
    return options


def get_engine() -> AsyncEngine:
    global _engine

    if _engine is None:
        settings = get_settings()
        url = settings.async_database_url
        _engine = create_async_engine(url, **engine_options(url, echo=settings.database_echo))
        logger.debug("database_engine_created", dialect=_engine.dialect.name)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory

    if _session_factory is None:
        # Services read results back after commit.
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def get_session() -> AsyncIterator[AsyncSession]:
    async with get_session_factory()() as session:
        yield session


async def dispose_engine() -> None:
    """Close pooled connections; the next caller builds a fresh engine."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
