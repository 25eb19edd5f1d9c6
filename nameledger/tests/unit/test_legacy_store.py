from __future__ import annotations

from datetime import datetime, timezone
import json
from pathlib import Path

import pytest

from nameledger.core.errors import LegacyStoreError
from nameledger.domain.names import GeneratedName
from nameledger.services.legacy_store import LegacyNameStore


def test_missing_file_is_an_empty_collection(tmp_path: Path) -> None:
    store = LegacyNameStore(tmp_path / "generatednames.json")
    assert store.read_text() == "[]"
    assert store.load() == []
    assert store.count() == 0


def test_blank_and_null_documents_are_empty(tmp_path: Path) -> None:
    store = LegacyNameStore(tmp_path / "generatednames.json")
    assert store.load_raw("   ") == []
    assert store.load_raw("null") == []


def test_invalid_documents_raise_store_errors(tmp_path: Path) -> None:
    # Unreadable sources abort the whole run, so they surface as a typed error.
    store = LegacyNameStore(tmp_path / "generatednames.json")
    with pytest.raises(LegacyStoreError):
        store.load_raw("{not json")
    with pytest.raises(LegacyStoreError):
        store.load_raw('{"ResourceName": "vm-prod-01"}')


def test_byte_order_mark_is_tolerated(tmp_path: Path) -> None:
    path = tmp_path / "generatednames.json"
    path.write_text('[{"ResourceName": "vm-prod-01"}]', encoding="utf-8-sig")
    assert LegacyNameStore(path).count() == 1


def test_append_assigns_next_id_and_rewrites(tmp_path: Path) -> None:
    # Ids continue from the current maximum, starting at one.
    path = tmp_path / "nested" / "generatednames.json"
    store = LegacyNameStore(path)
    first = store.append(GeneratedName(resource_name="vm-prod-01", user="alice"))
    assert first.id == 1

    path.write_text(json.dumps([{"Id": 41, "ResourceName": "st-dev-01"}]), encoding="utf-8")
    second = store.append(GeneratedName(resource_name="vm-prod-02", user="bob"))
    assert second.id == 42

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert [item["Id"] for item in payload] == [41, 42]
    assert payload[1]["ResourceName"] == "vm-prod-02"
    assert not path.with_name(f".{path.name}.tmp").exists()


def test_backup_copies_verbatim_with_timestamp_name(tmp_path: Path) -> None:
    store = LegacyNameStore(tmp_path / "generatednames.json")
    stamp = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc)
    document = '[{"ResourceName": "vm-prod-01"}]\n'

    first = store.backup(document, now=stamp)
    second = store.backup(document, now=stamp)

    assert first.name == "generatednames_backup_20240506_070809.json"
    assert second.name == "generatednames_backup_20240506_070809_1.json"
    assert first.read_text(encoding="utf-8") == document
