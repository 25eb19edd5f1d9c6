from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
import logging
import time
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from nameledger.core.config import MIGRATION_CREATED_BY, Settings, get_settings
from nameledger.core.errors import RecordTransformError
from nameledger.domain.models import GeneratedNameRecord, utcnow
from nameledger.domain.names import GeneratedName, build_record
from nameledger.persistence import db
from nameledger.persistence.repos import generated_names as generated_names_repo
from nameledger.services.legacy_store import LegacyNameStore


logger = logging.getLogger(__name__)


@dataclass
class MigrationResult:
    success: bool = False
    message: str = ""
    migrated_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    total_count: int = 0
    errors: list[str] = field(default_factory=list)
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration: timedelta = timedelta(0)
    backup_file_path: str | None = None

    @property
    def success_rate(self) -> float:
        if self.total_count <= 0:
            return 0.0
        return self.migrated_count / self.total_count * 100

    @property
    def is_complete_success(self) -> bool:
        return self.success and self.error_count == 0

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["start_time"] = self.start_time.isoformat() if self.start_time else None
        payload["end_time"] = self.end_time.isoformat() if self.end_time else None
        payload["duration_seconds"] = self.duration.total_seconds()
        payload.pop("duration")
        payload["success_rate"] = self.success_rate
        payload["is_complete_success"] = self.is_complete_success
        return payload


@dataclass
class MigrationStatus:
    database_initialized: bool = False
    json_migration_needed: bool = False
    migration_enabled: bool = False
    json_record_count: int = 0
    database_record_count: int = 0
    # Earliest migrated row's creation time; a proxy, no run history is stored.
    last_migration_date: datetime | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["last_migration_date"] = (
            self.last_migration_date.isoformat() if self.last_migration_date else None
        )
        return payload


@dataclass
class _ImportTally:
    migrated: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


def _describe(item: Any, index: int) -> str:
    if isinstance(item, dict):
        for key in ("ResourceName", "resourceName", "resource_name"):
            if item.get(key):
                return str(item[key])
    return f"#{index}"


class JsonMigrationService:
    """Moves legacy flat-file records into the relational store.

    A run stages every record inside one transaction. Records that fail to
    parse or transform are reported and skipped; any store error rolls the
    whole run back. Records already present (same resource name, user and
    creation time) are skipped, so repeated runs are safe.
    """

    def __init__(
        self,
        *,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession],
        store: LegacyNameStore,
        settings: Settings | None = None,
    ) -> None:
        self.engine = engine
        self.session_factory = session_factory
        self.store = store
        self.settings = settings or get_settings()

    @classmethod
    def from_defaults(cls, settings: Settings | None = None) -> JsonMigrationService:
        settings = settings or get_settings()
        return cls(
            engine=db.engine,
            session_factory=db.SessionLocal,
            store=LegacyNameStore.from_settings(settings),
            settings=settings,
        )

    @property
    def migration_enabled(self) -> bool:
        return self.settings.storage_enable_migration

    async def migrate_from_json_if_needed(self) -> bool:
        try:
            if not self.migration_enabled:
                logger.info("json_migration_skipped reason=disabled")
                return True
            await db.ensure_schema(self.engine)
            if not await self.is_json_migration_needed():
                logger.info("json_migration_skipped reason=not_needed")
                return True
            result = await self.migrate_from_json(backup_original=True)
        except Exception as exc:
            logger.error("json_migration_auto_failed", exc_info=exc)
            return False
        if result.success:
            logger.info("json_migration_auto_completed message=%s", result.message)
            return True
        logger.warning("json_migration_auto_failed message=%s", result.message)
        return False

    async def migrate_from_json(self, backup_original: bool = True) -> MigrationResult:
        result = MigrationResult(start_time=utcnow())
        started = time.monotonic()
        try:
            if not self.migration_enabled:
                result.message = "Migration is disabled in configuration"
                return result

            await db.ensure_schema(self.engine)
            document = self.store.read_text()
            items = self.store.load_raw(document)
            if not items:
                result.success = True
                result.message = "No data to migrate - legacy file is empty"
                return result
            result.total_count = len(items)

            # Backup failures are fatal: nothing is imported without a copy.
            if backup_original:
                result.backup_file_path = str(self.store.backup(document))

            async with self.session_factory() as session:
                async with session.begin():
                    tally = await self._import_items(session, items)

            result.success = True
            result.migrated_count = tally.migrated
            result.skipped_count = tally.skipped
            result.errors = tally.errors
            result.error_count = len(tally.errors)
            result.message = f"Migrated {tally.migrated} of {result.total_count} records"
            if tally.skipped:
                result.message += f", skipped {tally.skipped} existing"
            if tally.errors:
                result.message += f" with {len(tally.errors)} errors"
            logger.info("json_migration_completed message=%s", result.message)
        except Exception as exc:
            logger.error("json_migration_failed error=%s", exc, exc_info=exc)
            result.success = False
            result.migrated_count = 0
            result.skipped_count = 0
            result.message = f"Migration failed: {exc}"
            result.errors = [str(exc)]
            result.error_count = len(result.errors)
        finally:
            result.end_time = utcnow()
            result.duration = timedelta(seconds=time.monotonic() - started)
        return result

    async def _import_items(self, session: AsyncSession, items: list[Any]) -> _ImportTally:
        tally = _ImportTally()
        batch_size = max(1, int(self.settings.migration_batch_size))
        staged: set[tuple[str, str, datetime]] = set()
        # Staged rows are flushed in batches, not before every dedupe lookup.
        with session.no_autoflush:
            for index, item in enumerate(items):
                label = _describe(item, index)
                try:
                    name = GeneratedName.model_validate(item)
                    # Creation time is part of the dedupe key, so it must come from the source.
                    if "created_on" not in name.model_fields_set:
                        raise RecordTransformError("CreatedOn is required")
                    key = (name.resource_name, name.user, name.created_on)
                    if key in staged or await generated_names_repo.find_exact(
                        session,
                        resource_name=name.resource_name,
                        user=name.user,
                        created_on=name.created_on,
                    ) is not None:
                        tally.skipped += 1
                        logger.debug("json_migration_duplicate_skipped resource_name=%s", label)
                        continue
                    record = build_record(name, created_by=MIGRATION_CREATED_BY)
                except (RecordTransformError, ValueError, TypeError) as exc:
                    tally.errors.append(f"Failed to migrate record for resource '{label}': {exc}")
                    logger.warning("json_migration_record_failed resource_name=%s", label, exc_info=exc)
                    continue

                session.add(record)
                staged.add(key)
                tally.migrated += 1
                if tally.migrated % batch_size == 0:
                    await session.flush()
                    logger.debug("json_migration_progress migrated=%s", tally.migrated)
            await session.flush()
        return tally

    async def is_json_migration_needed(self) -> bool:
        # One-time bootstrap: never merge into a store that already holds rows.
        try:
            async with self.session_factory() as session:
                database_count = await generated_names_repo.count_generated_names(
                    session, include_deleted=True
                )
            if database_count > 0:
                logger.debug("json_migration_not_needed database_records=%s", database_count)
                return False
            json_count = self.store.count()
        except Exception as exc:
            logger.error("json_migration_check_failed", exc_info=exc)
            return False
        logger.debug("json_migration_check json_records=%s database_records=0", json_count)
        return json_count > 0

    async def validate_database_schema(self) -> bool:
        try:
            await db.ensure_schema(self.engine)
            async with self.session_factory() as session:
                await session.execute(select(GeneratedNameRecord.id).limit(1))
        except Exception as exc:
            logger.error("database_schema_validation_failed", exc_info=exc)
            return False
        logger.info("database_schema_validated")
        return True

    async def get_migration_status(self) -> MigrationStatus:
        status = MigrationStatus(migration_enabled=self.migration_enabled)
        try:
            status.database_initialized = await db.can_connect(self.engine)
            if status.database_initialized:
                async with self.session_factory() as session:
                    status.database_record_count = await generated_names_repo.count_generated_names(
                        session, include_deleted=True
                    )
                    if status.database_record_count > 0:
                        status.last_migration_date = await generated_names_repo.earliest_created_on(
                            session, created_by=MIGRATION_CREATED_BY
                        )
            try:
                status.json_record_count = self.store.count()
            except Exception as exc:
                logger.warning("legacy_store_read_failed", exc_info=exc)
                status.error_message = f"Failed to read legacy file: {exc}"
            status.json_migration_needed = await self.is_json_migration_needed()
        except Exception as exc:
            logger.error("migration_status_failed", exc_info=exc)
            status.error_message = str(exc)
        return status


_startup_lock = asyncio.Lock()
_startup_attempted = False


async def run_startup_migration(service: JsonMigrationService) -> bool | None:
    """Validate the schema and import legacy data once per process.

    Returns None when an earlier call already made the attempt.
    """

    global _startup_attempted
    async with _startup_lock:
        if _startup_attempted:
            return None
        _startup_attempted = True
        if not await service.validate_database_schema():
            logger.warning("startup_migration_skipped reason=schema_invalid")
            return False
        return await service.migrate_from_json_if_needed()


def reset_startup_migration() -> None:
    global _startup_attempted
    _startup_attempted = False
