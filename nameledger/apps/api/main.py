from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncIterator
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from nameledger.apps.api.errors import (
    database_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from nameledger.apps.api.routes.generated_names import router as generated_names_router
from nameledger.apps.api.routes.health import router as health_router
from nameledger.apps.api.routes.ops import router as ops_router
from nameledger.core.config import Settings, get_settings
from nameledger.core.logging import configure_logging
from nameledger.persistence import db
from nameledger.services.generated_names import GeneratedNamesService, build_name_storage
from nameledger.services.legacy_store import LegacyNameStore
from nameledger.services.migration import JsonMigrationService, run_startup_migration


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Import legacy data before serving; a failed import never blocks startup.
    try:
        outcome = await run_startup_migration(app.state.migration_service)
        logger.info("startup_migration_finished outcome=%s", outcome)
    except Exception as exc:
        logger.warning("startup_migration_failed", exc_info=exc)
    yield


def create_app(
    settings: Settings | None = None,
    *,
    engine: AsyncEngine | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    store: LegacyNameStore | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    engine = engine or db.engine
    session_factory = session_factory or (
        db.SessionLocal if engine is db.engine else db.build_session_factory(engine)
    )
    store = store or LegacyNameStore.from_settings(settings)

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.names_service = GeneratedNamesService(
        build_name_storage(settings, session_factory=session_factory, store=store)
    )
    app.state.migration_service = JsonMigrationService(
        engine=engine, session_factory=session_factory, store=store, settings=settings
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(SQLAlchemyError)
    async def _database_exception_handler(request: Request, exc: SQLAlchemyError):
        return await database_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    app.include_router(health_router)
    app.include_router(generated_names_router)
    app.include_router(ops_router)
    return app


app = create_app()
