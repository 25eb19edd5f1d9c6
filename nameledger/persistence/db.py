from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from nameledger.core.config import get_settings
from nameledger.domain.models import Base


logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, **overrides: Any) -> AsyncEngine:
    settings = get_settings()
    engine_kwargs: dict[str, Any] = {"pool_pre_ping": True}
    is_sqlite = database_url.startswith("sqlite")
    # Bound server-side pools; SQLite connections are per-file and cheap.
    if not is_sqlite:
        engine_kwargs["pool_size"] = max(1, int(settings.db_pool_size))
        engine_kwargs["max_overflow"] = max(0, int(settings.db_max_overflow))
        engine_kwargs["pool_timeout"] = 30
        engine_kwargs["pool_recycle"] = 1800
    engine_kwargs.update(overrides)
    engine = create_async_engine(database_url, **engine_kwargs)
    if is_sqlite:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


settings = get_settings()
engine = build_engine(settings.database_url)
SessionLocal = build_session_factory(engine)


async def ensure_schema(target: AsyncEngine | None = None) -> None:
    # Create missing tables and indexes; existing ones are left untouched.
    target = target or engine
    async with target.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)


async def can_connect(target: AsyncEngine | None = None) -> bool:
    target = target or engine
    try:
        async with target.connect() as connection:
            await connection.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("database_connect_failed", exc_info=exc)
        return False
    return True


def masked_database_url(database_url: str) -> str:
    return make_url(database_url).render_as_string(hide_password=True)


def pool_stats(target: AsyncEngine | None = None) -> dict[str, int | None]:
    pool = (target or engine).sync_engine.pool
    checked_out_fn = getattr(pool, "checkedout", None)
    checked_in_fn = getattr(pool, "checkedin", None)
    overflow_fn = getattr(pool, "overflow", None)
    size_fn = getattr(pool, "size", None)
    return {
        "size": int(size_fn()) if callable(size_fn) else None,
        "checked_out": int(checked_out_fn()) if callable(checked_out_fn) else None,
        "checked_in": int(checked_in_fn()) if callable(checked_in_fn) else None,
        "overflow": int(overflow_fn()) if callable(overflow_fn) else None,
    }
