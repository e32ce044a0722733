"""
AI Event Planner Client Core Entry Point.

Bootstraps the dependency graph via constructor injection, initialises
the local SQLite schema, restores any stored session headlessly and
reports the resolved role and landing view.  Every subsystem is wired
here; there are no module-level globals.

Usage::

    python main.py
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

from event_planner.config import get_config
from event_planner.database import DatabaseManager
from event_planner.logger import StructuredLogger, get_logger
from event_planner.schema import initialize_schema
from event_planner.services import create_services
from event_planner.ui.route_registry import build_default_registry, landing_path


async def run() -> int:
    """Wire dependencies, restore the session and log where it lands."""
    logger: StructuredLogger = get_logger("main")
    logger.info("Starting AI Event Planner client core...")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Database Manager (Supabase async client + local SQLite)
    # ------------------------------------------------------------------
    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        sqlite_path=Path(config.LOCAL_CACHE_PATH),
        logger=StructuredLogger(name="database"),
    )

    try:
        # --------------------------------------------------------------
        # 3. Local schema (idempotent)
        # --------------------------------------------------------------
        initialize_schema(db.sqlite, StructuredLogger(name="schema"))

        # --------------------------------------------------------------
        # 4. Backend connection (offline is not fatal)
        # --------------------------------------------------------------
        if not await db.connect():
            logger.warning("Running offline; the session will resolve as signed out.")

        # --------------------------------------------------------------
        # 5. Services and route table
        # --------------------------------------------------------------
        services = create_services(db=db, config=config)
        registry = build_default_registry(get_logger("routes"))
        session_context = services["session_context"]

        # --------------------------------------------------------------
        # 6. Restore the session
        # --------------------------------------------------------------
        state = await session_context.start()

        if state.identity is None:
            logger.info("No stored session; landing on %s.", landing_path(None))
        else:
            home = landing_path(state.role)
            logger.info(
                "Session restored for %s as %s; landing on %s (%d guarded routes).",
                state.identity.email,
                state.role,
                home,
                len(registry.get_routes_for_role(state.role)) if state.role else 0,
            )
        await session_context.close()
    finally:
        await db.close()
        logger.info("AI Event Planner client core shut down.")
    return 0


def main() -> None:
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
