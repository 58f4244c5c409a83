"""Progress database wiring.

One async engine per process, built from ``DATABASE_URL`` (a SQLite file next
to the project by default). Routers get sessions through ``get_session``;
``check_connection`` backs the health endpoints. Tests build their own
engine with ``make_engine`` and ``make_session_factory``.
"""
from __future__ import annotations

import logging
import os
import pathlib
from typing import Any, AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from scorm_bridge.models.persisted import Base

logger = logging.getLogger(__name__)

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[2]
DEFAULT_DATABASE_URL = f"sqlite+aiosqlite:///{PROJECT_ROOT / 'scorm_bridge.db'}"
DATABASE_URL = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)


def make_engine(url: str, **options: Any) -> AsyncEngine:
    """Async engine for ``url``; ``SQL_ECHO=true`` turns on statement logging."""
    options.setdefault("echo", os.getenv("SQL_ECHO", "false").lower() == "true")
    if not url.startswith("sqlite"):
        options.setdefault("pool_pre_ping", True)
    return create_async_engine(url, **options)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Progress rows are read back after commit by the routers
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


engine = make_engine(DATABASE_URL)
SessionLocal = make_session_factory(engine)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session; anything left open is rolled back."""
    async with SessionLocal() as session:
        try:
            yield session
        finally:
            if session.in_transaction():
                await session.rollback()


async def check_connection(session: AsyncSession) -> bool:
    try:
        await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Database check failed: %s", exc)
        return False
    return True


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """Create missing tables when migrations are not run at startup."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
