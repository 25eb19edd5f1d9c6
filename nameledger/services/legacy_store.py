from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import os
from pathlib import Path
from typing import Any

from nameledger.core.config import Settings, get_settings
from nameledger.core.errors import LegacyStoreError
from nameledger.domain.names import GeneratedName


logger = logging.getLogger(__name__)

EMPTY_DOCUMENT = "[]"


class LegacyNameStore:
    """Flat-file JSON array of generated names, the pre-database storage format.

    The whole collection is read and rewritten on every change, so it is only
    suitable as a migration source and as the fallback write path.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> LegacyNameStore:
        settings = settings or get_settings()
        return cls(settings.legacy_names_path)

    def read_text(self) -> str:
        # A missing file is an empty collection.
        if not self.path.exists():
            return EMPTY_DOCUMENT
        try:
            return self.path.read_text(encoding="utf-8-sig")
        except OSError as exc:
            raise LegacyStoreError(f"Failed to read {self.path}: {exc}") from exc

    def load_raw(self, text: str | None = None) -> list[Any]:
        # Items are returned unvalidated so callers can isolate bad entries.
        text = self.read_text() if text is None else text
        if not text.strip():
            return []
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise LegacyStoreError(f"{self.path} is not valid JSON: {exc}") from exc
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise LegacyStoreError(f"{self.path} must contain a JSON array")
        return payload

    def load(self) -> list[GeneratedName]:
        return [GeneratedName.model_validate(item) for item in self.load_raw()]

    def count(self) -> int:
        return len(self.load_raw())

    def write(self, names: list[GeneratedName]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        document = json.dumps([name.to_legacy_dict() for name in names], indent=2)
        # Replace atomically so a crash mid-write never truncates the collection.
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        tmp_path.write_text(document, encoding="utf-8")
        os.replace(tmp_path, self.path)

    def append(self, name: GeneratedName) -> GeneratedName:
        names = self.load()
        name.id = max((item.id for item in names), default=0) + 1
        names.append(name)
        self.write(names)
        logger.info("legacy_generated_name_appended id=%s resource_name=%s", name.id, name.resource_name)
        return name

    def backup(self, text: str, *, now: datetime | None = None) -> Path:
        """Copy the original document verbatim next to the source file."""

        stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d_%H%M%S")
        stem = self.path.stem
        target = self.path.with_name(f"{stem}_backup_{stamp}{self.path.suffix}")
        counter = 1
        while target.exists():
            target = self.path.with_name(f"{stem}_backup_{stamp}_{counter}{self.path.suffix}")
            counter += 1
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
        logger.info("legacy_backup_created path=%s", target)
        return target
