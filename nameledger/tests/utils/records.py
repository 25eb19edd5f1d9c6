from __future__ import annotations

from datetime import datetime, timezone
import json
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nameledger.domain.models import GeneratedNameComponent, GeneratedNameRecord
from nameledger.persistence.repos import generated_names as generated_names_repo


def utc(year: int, month: int = 1, day: int = 1, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def make_record(
    resource_name: str = "vm-prod-01",
    *,
    user: str = "alice",
    resource_type_name: str | None = "vm",
    created_on: datetime | None = None,
    components: list[tuple[str, str]] | None = None,
    **fields: Any,
) -> GeneratedNameRecord:
    # Build an unsaved record with ordered components for repository tests.
    return GeneratedNameRecord(
        resource_name=resource_name,
        user=user,
        resource_type_name=resource_type_name,
        created_on=created_on or datetime.now(timezone.utc),
        components=[
            GeneratedNameComponent(component_name=name, component_value=value, sort_order=index)
            for index, (name, value) in enumerate(components or [])
        ],
        **fields,
    )


async def seed_records(
    session_factory: async_sessionmaker[AsyncSession], records: list[GeneratedNameRecord]
) -> list[int]:
    # Persist records in one session and hand back their assigned ids.
    async with session_factory() as session:
        for record in records:
            await generated_names_repo.create_generated_name(session, record, commit=False)
        await session.commit()
    return [record.id for record in records]


def write_legacy_file(path: Path, items: list[Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(items, indent=2), encoding="utf-8")
