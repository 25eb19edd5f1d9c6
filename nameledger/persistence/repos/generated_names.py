from __future__ import annotations

from datetime import datetime
import functools
import logging
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from nameledger.domain.models import GeneratedNameRecord, utcnow
from nameledger.domain.queries import GeneratedNameFilter, PagedResult, PageRequest
from nameledger.persistence.filters import apply_filter, scoped, search_predicate


logger = logging.getLogger(__name__)

UNKNOWN_RESOURCE_TYPE = "Unknown"
DEFAULT_SEARCH_LIMIT = 100

_T = TypeVar("_T")

# Scalar columns written back by update_generated_name.
_UPDATABLE_FIELDS = (
    "created_on",
    "resource_name",
    "resource_type_name",
    "user",
    "message",
    "ip_address",
    "user_agent",
    "session_id",
    "request_id",
    "created_by",
    "is_deleted",
)


def _logged(func_: Callable[..., Awaitable[_T]]) -> Callable[..., Awaitable[_T]]:
    # Store errors are logged here and re-raised untouched; callers own retry policy.
    @functools.wraps(func_)
    async def wrapper(*args: Any, **kwargs: Any) -> _T:
        try:
            return await func_(*args, **kwargs)
        except SQLAlchemyError:
            logger.exception("generated_names_query_failed op=%s", func_.__name__)
            raise

    return wrapper


def _with_components(stmt):
    return stmt.options(selectinload(GeneratedNameRecord.components))


def _newest_first(stmt):
    # id breaks ties between identical timestamps so paging stays stable.
    return stmt.order_by(GeneratedNameRecord.created_on.desc(), GeneratedNameRecord.id.desc())


@_logged
async def create_generated_name(
    session: AsyncSession, record: GeneratedNameRecord, *, commit: bool = True
) -> GeneratedNameRecord:
    session.add(record)
    if commit:
        await session.commit()
    else:
        await session.flush()
    logger.info(
        "generated_name_created id=%s resource_name=%s", record.id, record.resource_name
    )
    return record


@_logged
async def get_generated_name(
    session: AsyncSession, record_id: int, *, include_deleted: bool = False
) -> GeneratedNameRecord | None:
    stmt = _with_components(select(GeneratedNameRecord)).where(GeneratedNameRecord.id == record_id)
    stmt = scoped(stmt, include_deleted=include_deleted)
    result = await session.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


@_logged
async def update_generated_name(
    session: AsyncSession, record: GeneratedNameRecord, *, commit: bool = True
) -> bool:
    # Writes every scalar column of the in-memory record; components are not touched.
    stamped = utcnow()
    values = {name: getattr(record, name) for name in _UPDATABLE_FIELDS}
    values["updated_on"] = stamped
    result = await session.execute(
        update(GeneratedNameRecord)
        .where(GeneratedNameRecord.id == record.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if commit:
        await session.commit()
    affected = (result.rowcount or 0) > 0
    if affected:
        record.updated_on = stamped
        logger.info("generated_name_updated id=%s", record.id)
    return affected


@_logged
async def delete_generated_name(session: AsyncSession, record_id: int, *, commit: bool = True) -> bool:
    # Physical delete; components go with it through ON DELETE CASCADE.
    result = await session.execute(
        delete(GeneratedNameRecord)
        .where(GeneratedNameRecord.id == record_id)
        .execution_options(synchronize_session=False)
    )
    if commit:
        await session.commit()
    deleted = (result.rowcount or 0) > 0
    if deleted:
        logger.info("generated_name_deleted id=%s", record_id)
    return deleted


@_logged
async def soft_delete_generated_name(
    session: AsyncSession, record_id: int, *, commit: bool = True
) -> bool:
    result = await session.execute(
        update(GeneratedNameRecord)
        .where(GeneratedNameRecord.id == record_id, GeneratedNameRecord.is_deleted.is_(False))
        .values(is_deleted=True, updated_on=utcnow())
        .execution_options(synchronize_session=False)
    )
    if commit:
        await session.commit()
    deleted = (result.rowcount or 0) > 0
    if deleted:
        logger.info("generated_name_soft_deleted id=%s", record_id)
    return deleted


@_logged
async def list_generated_names(
    session: AsyncSession,
    page: int,
    page_size: int,
    criteria: GeneratedNameFilter | None = None,
) -> PagedResult[GeneratedNameRecord]:
    request = PageRequest(page=page, page_size=page_size)
    count_stmt = select(func.count()).select_from(
        apply_filter(select(GeneratedNameRecord.id), criteria).subquery()
    )
    total = int((await session.execute(count_stmt)).scalar() or 0)

    stmt = _newest_first(apply_filter(_with_components(select(GeneratedNameRecord)), criteria))
    stmt = stmt.offset(request.offset).limit(request.page_size)
    result = await session.execute(stmt)
    return PagedResult(
        items=list(result.scalars().all()),
        total_count=total,
        page=request.page,
        page_size=request.page_size,
    )


@_logged
async def list_by_user(session: AsyncSession, user: str, limit: int = 100) -> list[GeneratedNameRecord]:
    stmt = scoped(_with_components(select(GeneratedNameRecord)).where(GeneratedNameRecord.user == user))
    result = await session.execute(_newest_first(stmt).limit(limit))
    return list(result.scalars().all())


@_logged
async def list_recent(session: AsyncSession, count: int = 50) -> list[GeneratedNameRecord]:
    stmt = scoped(_with_components(select(GeneratedNameRecord)))
    result = await session.execute(_newest_first(stmt).limit(count))
    return list(result.scalars().all())


@_logged
async def search_generated_names(
    session: AsyncSession, term: str, limit: int = DEFAULT_SEARCH_LIMIT
) -> list[GeneratedNameRecord]:
    # Substring match; case sensitivity follows the database collation.
    stmt = scoped(_with_components(select(GeneratedNameRecord)).where(search_predicate(term)))
    result = await session.execute(_newest_first(stmt).limit(limit))
    return list(result.scalars().all())


@_logged
async def count_generated_names(session: AsyncSession, *, include_deleted: bool = False) -> int:
    stmt = scoped(select(func.count()).select_from(GeneratedNameRecord), include_deleted=include_deleted)
    return int((await session.execute(stmt)).scalar() or 0)


@_logged
async def count_by_user(session: AsyncSession, user: str) -> int:
    stmt = scoped(
        select(func.count()).select_from(GeneratedNameRecord).where(GeneratedNameRecord.user == user)
    )
    return int((await session.execute(stmt)).scalar() or 0)


@_logged
async def count_by_resource_type(session: AsyncSession, resource_type: str) -> int:
    stmt = scoped(
        select(func.count())
        .select_from(GeneratedNameRecord)
        .where(GeneratedNameRecord.resource_type_name == resource_type)
    )
    return int((await session.execute(stmt)).scalar() or 0)


@_logged
async def usage_statistics(
    session: AsyncSession, from_date: datetime, to_date: datetime
) -> dict[str, int]:
    """Count records per resource type within an inclusive creation window.

    Null and blank resource types are reported together under "Unknown".
    The mapping is ordered by count, highest first.
    """

    counted = func.count(GeneratedNameRecord.id)
    stmt = scoped(
        select(GeneratedNameRecord.resource_type_name, counted)
        .where(
            GeneratedNameRecord.created_on >= from_date,
            GeneratedNameRecord.created_on <= to_date,
        )
        .group_by(GeneratedNameRecord.resource_type_name)
    )
    rows = (await session.execute(stmt.order_by(counted.desc()))).all()
    stats: dict[str, int] = {}
    for resource_type, count in rows:
        key = resource_type if resource_type and resource_type.strip() else UNKNOWN_RESOURCE_TYPE
        stats[key] = stats.get(key, 0) + int(count)
    return dict(sorted(stats.items(), key=lambda item: item[1], reverse=True))


@_logged
async def exists(session: AsyncSession, resource_name: str) -> bool:
    stmt = scoped(select(GeneratedNameRecord.id).where(GeneratedNameRecord.resource_name == resource_name))
    return (await session.execute(stmt.limit(1))).first() is not None


@_logged
async def is_duplicate(session: AsyncSession, resource_name: str, user: str) -> bool:
    stmt = scoped(
        select(GeneratedNameRecord.id).where(
            GeneratedNameRecord.resource_name == resource_name,
            GeneratedNameRecord.user == user,
        )
    )
    return (await session.execute(stmt.limit(1))).first() is not None


@_logged
async def bulk_delete(session: AsyncSession, ids: Iterable[int], *, commit: bool = True) -> int:
    wanted = list(dict.fromkeys(ids))
    if not wanted:
        return 0
    result = await session.execute(
        delete(GeneratedNameRecord)
        .where(GeneratedNameRecord.id.in_(wanted))
        .execution_options(synchronize_session=False)
    )
    if commit:
        await session.commit()
    deleted = result.rowcount or 0
    logger.info("generated_names_bulk_deleted count=%s", deleted)
    return deleted


@_logged
async def cleanup_old_records(session: AsyncSession, cutoff: datetime, *, commit: bool = True) -> int:
    # Hard purge by age, soft-deleted rows included.
    result = await session.execute(
        delete(GeneratedNameRecord)
        .where(GeneratedNameRecord.created_on < cutoff)
        .execution_options(synchronize_session=False)
    )
    if commit:
        await session.commit()
    deleted = result.rowcount or 0
    logger.info("generated_names_cleaned_up count=%s cutoff=%s", deleted, cutoff.isoformat())
    return deleted


@_logged
async def find_exact(
    session: AsyncSession, *, resource_name: str, user: str, created_on: datetime
) -> int | None:
    # Migration dedupe key; soft-deleted rows still count as already imported.
    stmt = select(GeneratedNameRecord.id).where(
        GeneratedNameRecord.resource_name == resource_name,
        GeneratedNameRecord.user == user,
        GeneratedNameRecord.created_on == created_on,
    )
    return (await session.execute(stmt.limit(1))).scalar()


@_logged
async def earliest_created_on(session: AsyncSession, *, created_by: str) -> datetime | None:
    stmt = select(func.min(GeneratedNameRecord.created_on)).where(
        GeneratedNameRecord.created_by == created_by
    )
    return (await session.execute(stmt)).scalar()
