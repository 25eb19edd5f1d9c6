from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from nameledger.core.config import get_settings
from nameledger.domain.models import GeneratedNameRecord
from nameledger.persistence.repos import generated_names as generated_names_repo


logger = logging.getLogger(__name__)


def retention_cutoff(retention_days: int | None = None, *, now: datetime | None = None) -> datetime:
    settings = get_settings()
    days = settings.generated_name_retention_days if retention_days is None else retention_days
    if days < 0:
        raise ValueError("retention_days must not be negative")
    return (now or datetime.now(timezone.utc)) - timedelta(days=days)


async def count_expired_generated_names(session: AsyncSession, cutoff: datetime) -> int:
    # Preview for dry runs; counts exactly what cleanup would purge.
    result = await session.execute(
        select(func.count()).select_from(GeneratedNameRecord).where(GeneratedNameRecord.created_on < cutoff)
    )
    return int(result.scalar() or 0)


async def prune_generated_names(
    session: AsyncSession, *, retention_days: int | None = None, dry_run: bool = False
) -> int:
    cutoff = retention_cutoff(retention_days)
    if dry_run:
        pending = await count_expired_generated_names(session, cutoff)
        logger.info("generated_names_prune_dry_run cutoff=%s pending=%s", cutoff.isoformat(), pending)
        return pending
    return await generated_names_repo.cleanup_old_records(session, cutoff)
