from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from nameledger.persistence.repos import generated_names as generated_names_repo
from nameledger.services import migration as migration_service
from nameledger.services.migration import JsonMigrationService
from nameledger.tests.utils.records import make_record, seed_records, write_legacy_file


SCENARIO_RECORD = {
    "Id": 1,
    "resourceName": "vm-prod-01",
    "user": "alice",
    "createdOn": "2024-01-01T00:00:00Z",
    "components": [["ResourceType", "vm"], ["Env", "prod"]],
}


def _legacy_items(count: int) -> list[dict]:
    return [
        {
            "Id": index + 1,
            "ResourceName": f"vm-prod-{index:02d}",
            "ResourceTypeName": "vm",
            "User": "alice",
            "CreatedOn": f"2024-01-01T00:{index:02d}:00Z",
            "Components": [["ResourceType", "vm"], ["Instance", f"{index:02d}"]],
        }
        for index in range(count)
    ]


@pytest.fixture
def build_service(db_engine, session_factory, legacy_store, test_settings):
    def _build(**overrides) -> JsonMigrationService:
        settings = test_settings.model_copy(update=overrides) if overrides else test_settings
        return JsonMigrationService(
            engine=db_engine, session_factory=session_factory, store=legacy_store, settings=settings
        )

    return _build


@pytest.mark.asyncio
async def test_single_record_scenario(build_service, legacy_store, session_factory) -> None:
    # One legacy record lands with the migration creator tag and ordered components.
    write_legacy_file(legacy_store.path, [SCENARIO_RECORD])
    service = build_service()

    assert await service.is_json_migration_needed() is True
    assert await service.migrate_from_json_if_needed() is True

    async with session_factory() as session:
        (record,) = await generated_names_repo.list_recent(session)
        loaded = await generated_names_repo.get_generated_name(session, record.id)
    assert loaded.created_by == "Migration"
    assert loaded.resource_name == "vm-prod-01"
    assert loaded.user == "alice"
    assert [(c.component_name, c.component_value) for c in loaded.components] == [
        ("ResourceType", "vm"),
        ("Env", "prod"),
    ]
    assert await service.is_json_migration_needed() is False
    backups = list(legacy_store.path.parent.glob("generatednames_backup_*.json"))
    assert len(backups) == 1


@pytest.mark.asyncio
async def test_repeated_runs_are_idempotent(build_service, legacy_store, session_factory) -> None:
    write_legacy_file(legacy_store.path, _legacy_items(5))
    service = build_service()

    first = await service.migrate_from_json(backup_original=False)
    second = await service.migrate_from_json(backup_original=False)

    assert first.success is True
    assert first.migrated_count == 5
    assert second.success is True
    assert second.migrated_count == 0
    assert second.skipped_count == 5
    assert second.is_complete_success is True
    async with session_factory() as session:
        assert await generated_names_repo.count_generated_names(session) == 5


@pytest.mark.asyncio
async def test_duplicates_within_one_source_are_skipped(build_service, legacy_store) -> None:
    items = _legacy_items(2)
    write_legacy_file(legacy_store.path, items + [dict(items[0], Id=3)])

    result = await build_service().migrate_from_json(backup_original=False)

    assert result.migrated_count == 2
    assert result.skipped_count == 1
    assert result.total_count == 3


@pytest.mark.asyncio
async def test_malformed_records_are_isolated(build_service, legacy_store, session_factory) -> None:
    # N records with K bad ones: N-K commit, K reported.
    items = _legacy_items(6)
    items[1] = {"Id": 2, "User": "alice"}
    items[3] = {"Id": 4, "ResourceName": "x" * 300, "User": "alice", "CreatedOn": "2024-02-01T00:00:00Z"}
    items[4] = 42
    write_legacy_file(legacy_store.path, items)

    result = await build_service(migration_batch_size=2).migrate_from_json(backup_original=False)

    assert result.success is True
    assert result.total_count == 6
    assert result.migrated_count == 3
    assert result.error_count == 3
    assert len(result.errors) == 3
    assert result.is_complete_success is False
    assert result.success_rate == pytest.approx(50.0)
    async with session_factory() as session:
        assert await generated_names_repo.count_generated_names(session) == 3


@pytest.mark.asyncio
async def test_store_failure_rolls_back_whole_run(
    build_service, legacy_store, session_factory, monkeypatch
) -> None:
    # Flushed batches are undone when the store fails later in the loop.
    write_legacy_file(legacy_store.path, _legacy_items(6))
    original_find_exact = generated_names_repo.find_exact
    calls = {"count": 0}

    async def failing_find_exact(session, **kwargs):
        calls["count"] += 1
        if calls["count"] > 4:
            raise OperationalError("SELECT generated_names", {}, Exception("database is gone"))
        return await original_find_exact(session, **kwargs)

    monkeypatch.setattr(generated_names_repo, "find_exact", failing_find_exact)

    result = await build_service(migration_batch_size=2).migrate_from_json(backup_original=False)

    assert result.success is False
    assert result.migrated_count == 0
    assert "database is gone" in result.message
    assert result.errors and "database is gone" in result.errors[0]
    assert result.end_time is not None
    async with session_factory() as session:
        assert await generated_names_repo.count_generated_names(session, include_deleted=True) == 0


@pytest.mark.asyncio
async def test_disabled_and_empty_sources(build_service, legacy_store) -> None:
    disabled = build_service(storage_enable_migration=False)
    result = await disabled.migrate_from_json()
    assert result.success is False
    assert result.message == "Migration is disabled in configuration"
    assert await disabled.migrate_from_json_if_needed() is True

    empty = build_service()
    write_legacy_file(legacy_store.path, [])
    result = await empty.migrate_from_json()
    assert result.success is True
    assert result.total_count == 0
    assert result.backup_file_path is None
    assert await empty.is_json_migration_needed() is False


@pytest.mark.asyncio
async def test_unreadable_source_fails_the_run(build_service, legacy_store) -> None:
    legacy_store.path.write_text("{broken", encoding="utf-8")
    service = build_service()

    result = await service.migrate_from_json()

    assert result.success is False
    assert result.error_count == 1
    assert await service.is_json_migration_needed() is False


@pytest.mark.asyncio
async def test_populated_store_never_needs_migration(build_service, legacy_store, session_factory) -> None:
    # Soft-deleted rows still count as a populated store.
    write_legacy_file(legacy_store.path, _legacy_items(2))
    await seed_records(session_factory, [make_record(is_deleted=True)])
    service = build_service()

    assert await service.is_json_migration_needed() is False
    assert await service.migrate_from_json_if_needed() is True
    async with session_factory() as session:
        assert await generated_names_repo.count_generated_names(session, include_deleted=True) == 1


@pytest.mark.asyncio
async def test_status_reports_counts(build_service, legacy_store) -> None:
    write_legacy_file(legacy_store.path, _legacy_items(3))
    service = build_service()

    before = await service.get_migration_status()
    assert before.database_initialized is True
    assert before.migration_enabled is True
    assert before.json_record_count == 3
    assert before.database_record_count == 0
    assert before.json_migration_needed is True
    assert before.last_migration_date is None

    await service.migrate_from_json(backup_original=False)
    after = await service.get_migration_status()
    assert after.database_record_count == 3
    assert after.json_migration_needed is False
    assert after.last_migration_date is not None
    assert after.to_dict()["last_migration_date"].startswith("2024-01-01T00:00:00")


@pytest.mark.asyncio
async def test_status_reports_unreadable_source(build_service, legacy_store) -> None:
    legacy_store.path.write_text("not json", encoding="utf-8")
    status = await build_service().get_migration_status()
    assert status.error_message is not None
    assert status.json_migration_needed is False


@pytest.mark.asyncio
async def test_startup_migration_runs_once(build_service, legacy_store) -> None:
    write_legacy_file(legacy_store.path, [SCENARIO_RECORD])
    service = build_service()

    assert await migration_service.run_startup_migration(service) is True
    assert await migration_service.run_startup_migration(service) is None
    migration_service.reset_startup_migration()
    assert await migration_service.run_startup_migration(service) is True


@pytest.mark.asyncio
async def test_result_to_dict(build_service, legacy_store) -> None:
    write_legacy_file(legacy_store.path, _legacy_items(2))
    result = await build_service().migrate_from_json()
    payload = result.to_dict()
    assert payload["success"] is True
    assert payload["migrated_count"] == 2
    assert payload["success_rate"] == pytest.approx(100.0)
    assert payload["duration_seconds"] >= 0
    assert payload["backup_file_path"].endswith(".json")
    assert "duration" not in payload


@pytest.mark.asyncio
async def test_null_resource_type_is_imported_as_blank(build_service, legacy_store, session_factory) -> None:
    # Names generated without a resource type carry a JSON null.
    write_legacy_file(
        legacy_store.path,
        [
            {
                "Id": 1,
                "ResourceName": "rg-prod",
                "ResourceTypeName": None,
                "User": "alice",
                "CreatedOn": "2024-01-01T00:00:00Z",
                "Components": [],
            }
        ],
    )

    result = await build_service().migrate_from_json(backup_original=False)

    assert result.migrated_count == 1
    assert result.error_count == 0
    async with session_factory() as session:
        (record,) = await generated_names_repo.list_recent(session)
    assert record.resource_name == "rg-prod"
    assert record.resource_type_name == ""


@pytest.mark.asyncio
async def test_records_without_creation_time_are_reported(build_service, legacy_store) -> None:
    # Without a source timestamp the record could not be matched on a later run.
    items = _legacy_items(2)
    del items[1]["CreatedOn"]
    write_legacy_file(legacy_store.path, items)
    service = build_service()

    first = await service.migrate_from_json(backup_original=False)
    second = await service.migrate_from_json(backup_original=False)

    assert first.migrated_count == 1
    assert first.error_count == 1
    assert "CreatedOn is required" in first.errors[0]
    assert second.migrated_count == 0
    assert second.skipped_count == 1
    assert second.error_count == 1
