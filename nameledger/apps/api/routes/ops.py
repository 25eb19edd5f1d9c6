from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncEngine

from nameledger.apps.api.deps import get_migration_service
from nameledger.persistence import db
from nameledger.persistence.repos import generated_names as generated_names_repo
from nameledger.services.migration import JsonMigrationService


router = APIRouter(tags=["ops"])


class DatabaseDebugResponse(BaseModel):
    can_connect: bool
    record_count: int | None
    database_url: str
    pool: dict[str, int | None]
    error: str | None = None
    timestamp: datetime


@router.get("/debug/database")
async def debug_database(request: Request) -> DatabaseDebugResponse:
    # Diagnostic probe; failures are reported in the body rather than as an error status.
    engine: AsyncEngine = request.app.state.engine
    connected = await db.can_connect(engine)
    record_count: int | None = None
    error: str | None = None
    if connected:
        try:
            async with request.app.state.session_factory() as session:
                record_count = await generated_names_repo.count_generated_names(session)
        except Exception as exc:
            error = str(exc)
    return DatabaseDebugResponse(
        can_connect=connected,
        record_count=record_count,
        database_url=db.masked_database_url(str(engine.url)),
        pool=db.pool_stats(engine),
        error=error,
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/ops/migration/status")
async def migration_status(
    service: JsonMigrationService = Depends(get_migration_service),
) -> dict[str, Any]:
    status = await service.get_migration_status()
    return status.to_dict()


@router.post("/ops/migration/run")
async def run_migration(
    backup: bool = True,
    service: JsonMigrationService = Depends(get_migration_service),
) -> dict[str, Any]:
    # Always 200; the outcome, including fatal failures, is carried in the result body.
    result = await service.migrate_from_json(backup_original=backup)
    return result.to_dict()
