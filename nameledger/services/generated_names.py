from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.requests import Request

from nameledger.core.config import Settings, get_settings
from nameledger.domain.names import GeneratedName, build_record, to_generated_name
from nameledger.domain.queries import GeneratedNameFilter, PagedResult, PageRequest
from nameledger.persistence import db
from nameledger.persistence.repos import generated_names as generated_names_repo
from nameledger.services.legacy_store import LegacyNameStore
from nameledger.services.request_context import RequestContext, get_request_context


logger = logging.getLogger(__name__)

STORAGE_DATABASE = "database"
STORAGE_JSON = "json"


@dataclass
class WriteResult:
    success: bool
    name: GeneratedName
    storage: str
    error: str | None = None


class NameStorage(Protocol):
    kind: str

    async def write(self, name: GeneratedName, context: RequestContext) -> GeneratedName: ...

    async def list_page(
        self, page: int, page_size: int, criteria: GeneratedNameFilter | None = None
    ) -> PagedResult[GeneratedName]: ...


class DatabaseNameStorage:
    kind = STORAGE_DATABASE

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def write(self, name: GeneratedName, context: RequestContext) -> GeneratedName:
        record = build_record(
            name,
            created_by=name.user,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            session_id=context.session_id,
            request_id=context.request_id,
        )
        async with self.session_factory() as session:
            created = await generated_names_repo.create_generated_name(session, record)
        name.id = created.id
        return name

    async def list_page(
        self, page: int, page_size: int, criteria: GeneratedNameFilter | None = None
    ) -> PagedResult[GeneratedName]:
        async with self.session_factory() as session:
            result = await generated_names_repo.list_generated_names(session, page, page_size, criteria)
            items = [to_generated_name(record) for record in result.items]
        return PagedResult(
            items=items, total_count=result.total_count, page=result.page, page_size=result.page_size
        )


class JsonFileNameStorage:
    """Fallback path: the legacy flat file, rewritten in full on every write.

    Request audit fields have no place in the legacy format and are dropped.
    Listing ignores filter criteria.
    """

    kind = STORAGE_JSON

    def __init__(self, store: LegacyNameStore) -> None:
        self.store = store
        # Serializes read-modify-write cycles on the shared file within this process.
        self._lock = asyncio.Lock()

    async def write(self, name: GeneratedName, context: RequestContext) -> GeneratedName:
        async with self._lock:
            return await asyncio.to_thread(self.store.append, name)

    async def list_page(
        self, page: int, page_size: int, criteria: GeneratedNameFilter | None = None
    ) -> PagedResult[GeneratedName]:
        request = PageRequest(page=page, page_size=page_size)
        loaded = await asyncio.to_thread(self.store.load)
        names = sorted(loaded, key=lambda item: (item.created_on, item.id), reverse=True)
        return PagedResult(
            items=names[request.offset : request.offset + request.page_size],
            total_count=len(names),
            page=request.page,
            page_size=request.page_size,
        )


def build_name_storage(
    settings: Settings,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    store: LegacyNameStore | None = None,
) -> NameStorage:
    # Chosen once from configuration; callers never branch on the backend.
    if settings.storage_use_database and session_factory is not None:
        return DatabaseNameStorage(session_factory)
    return JsonFileNameStorage(store or LegacyNameStore.from_settings(settings))


class GeneratedNamesService:
    def __init__(self, storage: NameStorage) -> None:
        self.storage = storage

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> GeneratedNamesService:
        settings = settings or get_settings()
        if session_factory is None and settings.storage_use_database:
            session_factory = db.SessionLocal
        return cls(build_name_storage(settings, session_factory=session_factory))

    async def log_generated_name(
        self,
        name: GeneratedName,
        request: Request | None = None,
        *,
        context: RequestContext | None = None,
    ) -> WriteResult:
        # Failures are reported in the result, never raised to the naming flow.
        resolved = context or get_request_context(request)
        try:
            stored = await self.storage.write(name, resolved)
        except Exception as exc:
            logger.exception(
                "generated_name_log_failed storage=%s resource_name=%s",
                self.storage.kind,
                name.resource_name,
            )
            return WriteResult(success=False, name=name, storage=self.storage.kind, error=str(exc))
        logger.info(
            "generated_name_logged storage=%s id=%s resource_name=%s user=%s",
            self.storage.kind,
            stored.id,
            stored.resource_name,
            stored.user,
        )
        return WriteResult(success=True, name=stored, storage=self.storage.kind)

    async def list_names(
        self, page: int = 1, page_size: int = 50, criteria: GeneratedNameFilter | None = None
    ) -> PagedResult[GeneratedName]:
        return await self.storage.list_page(page, page_size, criteria)
