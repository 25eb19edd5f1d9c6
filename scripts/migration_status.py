from __future__ import annotations

import asyncio
import json

from nameledger.core.logging import configure_logging
from nameledger.services.migration import JsonMigrationService


async def status() -> None:
    service = JsonMigrationService.from_defaults()
    report = await service.get_migration_status()
    print(json.dumps(report.to_dict(), indent=2))


if __name__ == "__main__":
    configure_logging()
    asyncio.run(status())
