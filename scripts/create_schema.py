#!/usr/bin/env python3
"""
create_schema.py
----------------

Create (or recreate) the Rankstream tables in the database named by
DATABASE_URL.

USAGE:
  python scripts/create_schema.py            # create missing tables
  python scripts/create_schema.py --drop     # drop everything first
"""

import argparse
import asyncio
import sys

from rankstream.core.database.service import DatabaseService
from rankstream.core.logging.logger import get_logger
from rankstream.database.models import Base

logger = get_logger("rankstream.scripts.create_schema")


async def create_schema(drop: bool) -> None:
    await DatabaseService.initialize()
    try:
        async with DatabaseService.get_engine().begin() as conn:
            if drop:
                logger.warning("Dropping all tables")
                await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        logger.info(
            "Schema ready",
            extra={"tables": sorted(Base.metadata.tables)},
        )
    finally:
        await DatabaseService.shutdown()


def main() -> int:
    parser = argparse.ArgumentParser(description="Create the Rankstream schema")
    parser.add_argument("--drop", action="store_true", help="drop existing tables first")
    args = parser.parse_args()

    try:
        asyncio.run(create_schema(args.drop))
    except Exception as exc:
        logger.critical(f"Schema creation failed: {exc}", exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
