from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from nameledger.services.generated_names import GeneratedNamesService
from nameledger.services.migration import JsonMigrationService


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    # One session per request, closed (and rolled back if uncommitted) on exit.
    async with request.app.state.session_factory() as session:
        yield session


def get_names_service(request: Request) -> GeneratedNamesService:
    return request.app.state.names_service


def get_migration_service(request: Request) -> JsonMigrationService:
    return request.app.state.migration_service
