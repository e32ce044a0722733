"""
Seed the first administrator.

One-time bootstrap: promotes an already-registered account to ``admin``
and inserts its ``admins`` row, but only while no administrator exists.
Runs with the service-role key so it bypasses row-level security and
can sync the account's identity metadata.

Usage::

    python scripts/seed_admin.py --email owner@example.com
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from event_planner.config import get_config
from event_planner.database import DatabaseManager
from event_planner.logger import StructuredLogger, get_logger
from event_planner.schema import initialize_schema
from event_planner.services import create_services


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Promote the first administrator.")
    parser.add_argument("--email", required=True, help="Email of the registered account.")
    return parser.parse_args(argv)


async def seed(email: str) -> int:
    logger: StructuredLogger = get_logger("seed_admin")
    config = get_config()

    service_key = config.SUPABASE_SERVICE_ROLE_KEY.get_secret_value()
    if not service_key:
        logger.error("SUPABASE_SERVICE_ROLE_KEY is not set; cannot seed an administrator.")
        return 2

    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=service_key,
        sqlite_path=Path(config.LOCAL_CACHE_PATH),
        logger=StructuredLogger(name="database"),
    )
    try:
        initialize_schema(db.sqlite, StructuredLogger(name="schema"))
        if not await db.connect():
            logger.error("Could not connect to Supabase.")
            return 1

        services = create_services(db=db, config=config, privileged=True)
        result = await services["admin_service"].bootstrap_admin(email.strip().lower())
    finally:
        await db.close()

    if not result.success:
        logger.error("Bootstrap failed (%d): %s", result.status_code, result.error)
        # An existing administrator is the expected outcome of a re-run.
        return 0 if result.status_code == 409 else 1

    for warning in result.warnings:
        logger.warning(warning)
    logger.info("Administrator seeded: %s", email)
    return 0


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    sys.exit(asyncio.run(seed(args.email)))


if __name__ == "__main__":
    main()
