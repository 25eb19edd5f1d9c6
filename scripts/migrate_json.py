from __future__ import annotations

import argparse
import asyncio
import json

from nameledger.core.logging import configure_logging
from nameledger.services.migration import JsonMigrationService


async def _run_migration(backup: bool) -> bool:
    # Import the legacy flat file into the database; safe to repeat.
    service = JsonMigrationService.from_defaults()
    result = await service.migrate_from_json(backup_original=backup)
    print(json.dumps(result.to_dict(), indent=2))
    return result.success


def main() -> None:
    parser = argparse.ArgumentParser(description="Migrate legacy generated names from JSON to the database")
    parser.add_argument("--no-backup", action="store_true", help="skip the backup copy of the legacy file")
    args = parser.parse_args()

    configure_logging()
    succeeded = asyncio.run(_run_migration(backup=not args.no_backup))
    raise SystemExit(0 if succeeded else 1)


if __name__ == "__main__":
    main()
