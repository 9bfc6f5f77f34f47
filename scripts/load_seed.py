#!/usr/bin/env python3
"""Load a seed catalog (laboratories, price lists, mappings, bundle deals).

Usage: uv run scripts/load_seed.py [path/to/seed.yaml]

Records that already exist (same laboratory code, same normalized canonical
name, same deal name) are left untouched, so the script can be re-run.
"""

import asyncio
import logging
import sys

from labquote_api.core.logging import configure_logging
from labquote_api.core.settings import get_settings
from labquote_api.db.session import dispose_engine, get_session
from labquote_api.seed import SeedLoader, load_seed

logger = logging.getLogger(__name__)


async def main(path: str | None = None) -> None:
    configure_logging(get_settings().log_level)
    config = load_seed(path)
    logger.info(
        "Loading seed with %d laboratories, %d mappings, %d deals",
        len(config.laboratories),
        len(config.mappings),
        len(config.deals),
    )
    try:
        async with get_session() as session:
            report = await SeedLoader(session, config).apply()
        logger.info("Seed loaded: %s", report)
    finally:
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None))
