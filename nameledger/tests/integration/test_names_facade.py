from __future__ import annotations

import asyncio
import json

import pytest

from nameledger.domain.names import GeneratedName
from nameledger.domain.queries import GeneratedNameFilter
from nameledger.persistence.repos import generated_names as generated_names_repo
from nameledger.services.generated_names import (
    DatabaseNameStorage,
    GeneratedNamesService,
    JsonFileNameStorage,
    build_name_storage,
)
from nameledger.services.request_context import RequestContext
from nameledger.tests.utils.records import utc


def _name(resource_name: str = "vm-prod-01", **fields) -> GeneratedName:
    return GeneratedName(
        resource_name=resource_name,
        resource_type_name="vm",
        user="alice",
        components=[["ResourceType", "vm"], ["Env", "prod"]],
        **fields,
    )


def test_storage_is_chosen_from_configuration(test_settings, session_factory, legacy_store) -> None:
    database = build_name_storage(test_settings, session_factory=session_factory, store=legacy_store)
    legacy = build_name_storage(
        test_settings.model_copy(update={"storage_use_database": False}),
        session_factory=session_factory,
        store=legacy_store,
    )
    without_factory = build_name_storage(test_settings, store=legacy_store)
    assert isinstance(database, DatabaseNameStorage)
    assert isinstance(legacy, JsonFileNameStorage)
    assert isinstance(without_factory, JsonFileNameStorage)


@pytest.mark.asyncio
async def test_database_write_enriches_and_copies_id(session_factory) -> None:
    # Audit fields come from the request context and the creator is the requesting user.
    service = GeneratedNamesService(DatabaseNameStorage(session_factory))
    name = _name()
    context = RequestContext(ip_address="198.51.100.7", user_agent="pytest", session_id="s-1", request_id="r-1")

    result = await service.log_generated_name(name, context=context)

    assert result.success is True
    assert result.storage == "database"
    assert name.id > 0
    async with session_factory() as session:
        record = await generated_names_repo.get_generated_name(session, name.id)
    assert record.ip_address == "198.51.100.7"
    assert record.user_agent == "pytest"
    assert record.session_id == "s-1"
    assert record.request_id == "r-1"
    assert record.created_by == "alice"
    assert [(c.component_name, c.component_value, c.sort_order) for c in record.components] == [
        ("ResourceType", "vm", 0),
        ("Env", "prod", 1),
    ]


@pytest.mark.asyncio
async def test_database_write_failure_is_reported(session_factory) -> None:
    # Invalid names produce a failed result instead of an exception.
    service = GeneratedNamesService(DatabaseNameStorage(session_factory))
    result = await service.log_generated_name(_name("x" * 300))
    assert result.success is False
    assert "resource_name" in result.error


@pytest.mark.asyncio
async def test_json_write_appends_to_flat_file(legacy_store) -> None:
    service = GeneratedNamesService(JsonFileNameStorage(legacy_store))

    first = await service.log_generated_name(_name("vm-prod-01"))
    second = await service.log_generated_name(_name("vm-prod-02"))

    assert first.storage == "json"
    assert (first.name.id, second.name.id) == (1, 2)
    payload = json.loads(legacy_store.path.read_text(encoding="utf-8"))
    assert [item["ResourceName"] for item in payload] == ["vm-prod-01", "vm-prod-02"]


@pytest.mark.asyncio
async def test_json_write_failure_is_reported(legacy_store) -> None:
    legacy_store.path.write_text("{broken", encoding="utf-8")
    service = GeneratedNamesService(JsonFileNameStorage(legacy_store))
    result = await service.log_generated_name(_name())
    assert result.success is False
    assert result.error


@pytest.mark.asyncio
async def test_list_names_from_both_storages(session_factory, legacy_store) -> None:
    # The flat file is listed newest first and ignores filters.
    database = GeneratedNamesService(DatabaseNameStorage(session_factory))
    legacy = GeneratedNamesService(JsonFileNameStorage(legacy_store))
    for index in range(3):
        created_on = utc(2024, 1, index + 1)
        await database.log_generated_name(_name(f"vm-prod-{index}", created_on=created_on))
        await legacy.log_generated_name(_name(f"vm-prod-{index}", created_on=created_on))

    from_database = await database.list_names(1, 2, GeneratedNameFilter(resource_name="vm-prod-1"))
    assert from_database.total_count == 1
    assert from_database.items[0].components == [["ResourceType", "vm"], ["Env", "prod"]]

    from_file = await legacy.list_names(1, 2, GeneratedNameFilter(resource_name="vm-prod-1"))
    assert from_file.total_count == 3
    assert [item.resource_name for item in from_file.items] == ["vm-prod-2", "vm-prod-1"]
    assert from_file.has_next_page is True


@pytest.mark.asyncio
async def test_concurrent_json_writes_get_distinct_ids(legacy_store) -> None:
    # File writes run off the event loop but stay serialized per storage.
    service = GeneratedNamesService(JsonFileNameStorage(legacy_store))

    results = await asyncio.gather(*(service.log_generated_name(_name(f"vm-prod-{index}")) for index in range(5)))

    assert all(result.success for result in results)
    assert sorted(result.name.id for result in results) == [1, 2, 3, 4, 5]
    assert legacy_store.count() == 5
