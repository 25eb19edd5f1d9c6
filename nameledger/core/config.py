from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


# Creator tags distinguish natively logged rows from bulk-imported ones.
DEFAULT_CREATED_BY = "System"
MIGRATION_CREATED_BY = "Migration"
DEFAULT_USER = "General"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "nameledger"
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///./nameledger.db"
    # Pool bounds apply to server backends only; SQLite uses a static pool per file.
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # Route new writes to the relational store; false keeps the legacy flat file.
    storage_use_database: bool = True
    # Gate both the startup import and on-demand runs of the JSON migration.
    storage_enable_migration: bool = True
    # Location of the legacy flat-file store and its backup copies.
    legacy_data_dir: str = "./settings"
    legacy_names_file: str = "generatednames.json"
    # Flush staged migration inserts every N records to bound session memory.
    migration_batch_size: int = 100

    search_result_limit: int = 100
    # Default purge window for the cleanup script.
    generated_name_retention_days: int = 365
    session_cookie_name: str = "session"

    @property
    def legacy_names_path(self) -> Path:
        return Path(self.legacy_data_dir) / self.legacy_names_file


@lru_cache
def get_settings() -> Settings:
    return Settings()
