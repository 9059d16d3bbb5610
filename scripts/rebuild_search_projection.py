#!/usr/bin/env python3
"""Rebuild the search projection by replaying the durable event log."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from jobhub.core.config import get_settings
from jobhub.core.telemetry import configure_logging
from jobhub.services.projection import SEARCH_PATTERNS
from jobhub.services.runtime import Runtime

SCHEMA_PATH = Path(__file__).resolve().parent.parent / "db" / "schema.sql"

logger = logging.getLogger("rebuild_search_projection")


async def rebuild(*, apply_schema: bool) -> int:
    settings = get_settings().model_copy(update={"storage_backend": "postgres"})
    runtime = Runtime(settings)
    try:
        if apply_schema and runtime.database is not None:
            pool = await runtime.database.get_pool()
            await pool.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
            logger.info("schema applied from %s", SCHEMA_PATH)
        await runtime.start()
        events = await runtime.bus.read_log(SEARCH_PATTERNS)
        return await runtime.projection.rebuild(events)
    finally:
        await runtime.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Clear search_entries and replay job events from event_log.")
    parser.add_argument(
        "--apply-schema",
        action="store_true",
        help="Run db/schema.sql before replaying (statements are idempotent).",
    )
    args = parser.parse_args()

    configure_logging()
    replayed = asyncio.run(rebuild(apply_schema=args.apply_schema))
    print(f"replayed {replayed} events into search_entries")


if __name__ == "__main__":
    main()
