from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from nameledger.core.config import Settings, get_settings
from nameledger.persistence.db import build_engine, build_session_factory, ensure_schema
from nameledger.services.legacy_store import LegacyNameStore
from nameledger.services.migration import reset_startup_migration


@pytest.fixture(autouse=True)
def reset_process_state() -> None:
    # Settings are cached and the startup migration runs once per process; isolate both.
    get_settings.cache_clear()
    reset_startup_migration()
    yield
    get_settings.cache_clear()
    reset_startup_migration()


@pytest.fixture
def legacy_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "settings"
    directory.mkdir()
    return directory


@pytest.fixture
def legacy_store(legacy_dir: Path) -> LegacyNameStore:
    return LegacyNameStore(legacy_dir / "generatednames.json")


@pytest.fixture
def test_settings(tmp_path: Path, legacy_dir: Path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'nameledger.db'}",
        legacy_data_dir=str(legacy_dir),
        storage_use_database=True,
        storage_enable_migration=True,
    )


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncEngine:
    # One SQLite file per test keeps every case independent.
    engine = build_engine(test_settings.database_url)
    await ensure_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(db_engine)


@pytest.fixture
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncSession:
    async with session_factory() as session:
        yield session
