from __future__ import annotations

import argparse
import asyncio

from nameledger.core.config import get_settings
from nameledger.core.logging import configure_logging
from nameledger.persistence.db import SessionLocal
from nameledger.services.maintenance import prune_generated_names


async def _run_cleanup(retention_days: int, dry_run: bool) -> None:
    # Purge generated names older than the retention window.
    async with SessionLocal() as session:
        affected = await prune_generated_names(session, retention_days=retention_days, dry_run=dry_run)
    if dry_run:
        print(f"dry_run=true expired_generated_names={affected}")
    else:
        print(f"pruned_generated_names={affected}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Delete generated names beyond retention")
    parser.add_argument("--retention-days", type=int, default=None)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()

    configure_logging()
    settings = get_settings()
    retention = settings.generated_name_retention_days if args.retention_days is None else args.retention_days
    asyncio.run(_run_cleanup(retention, args.dry_run))


if __name__ == "__main__":
    main()
