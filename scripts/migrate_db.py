#!/usr/bin/env python3
"""
AssetLogix Schema Patcher
=========================
Bring the configured database up to date without starting the API.

Usage:
    DATABASE_URL=postgresql+asyncpg://... python scripts/migrate_db.py

Exits 0 when the schema is current (a second run reports no changes) and 1
when a patch step fails.
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "apps" / "backend"))

from config import get_settings  # noqa: E402
from database.migrations import apply_schema_patches  # noqa: E402
from database.session import dispose_engine, get_engine  # noqa: E402
from exceptions import MigrationError  # noqa: E402
from logging_config import configure_logging, get_logger  # noqa: E402

logger = get_logger("migrate_db")


async def run() -> int:
    try:
        stats = await apply_schema_patches(get_engine())
    except MigrationError as e:
        logger.error("Migration failed", step=e.context.get("step"), error=e.message)
        return 1
    finally:
        await dispose_engine()

    changed = any(
        [stats["tables_created"], stats["columns_added"], stats["roles_seeded"], stats["users_backfilled"]]
    )
    if changed:
        logger.info("Migration complete", **stats)
    else:
        logger.info("Schema already up to date")
    return 0


def main() -> int:
    settings = get_settings()
    configure_logging(environment=settings.environment, log_level=settings.log_level)
    return asyncio.run(run())


if __name__ == "__main__":
    sys.exit(main())
