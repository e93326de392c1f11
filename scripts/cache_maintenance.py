"""
Cache maintenance against the configured durable store

Usage:
  python scripts/cache_maintenance.py stats
  python scripts/cache_maintenance.py sweep [--max-age-days 30]
  python scripts/cache_maintenance.py clear [prefix]

Notes:
  - Reads STORAGE_DATABASE_URL / STORAGE_NAMESPACE from the environment (.env).
  - ``clear`` with no prefix empties the whole cache namespace; the session
    token is left alone.
"""

import argparse
import asyncio
import json
import logging
from typing import Optional

from farmdata.core.config import DAY_MS, settings
from farmdata.core.database import dispose_engines
from farmdata.core.logging_config import setup_logging
from farmdata.services.cache_store import CacheStore
from farmdata.services.kv_store import SqlKeyValueStore

logger = logging.getLogger("cache_maintenance")


def build_cache() -> CacheStore:
    kv = SqlKeyValueStore(settings.STORAGE_DATABASE_URL, settings.STORAGE_NAMESPACE)
    return CacheStore(kv, max_entries=settings.CACHE_MAX_ENTRIES)


async def main(command: str, prefix: Optional[str], max_age_days: Optional[float]) -> None:
    cache = build_cache()
    try:
        if command == "stats":
            print(json.dumps(cache.stats(), indent=2))
        elif command == "sweep":
            max_age_ms = max_age_days * DAY_MS if max_age_days is not None else settings.CACHE_SWEEP_MAX_AGE_MS
            removed = cache.sweep(max_age_ms)
            logger.info(f"Sweep removed {removed} entries")
            print(json.dumps({"removed": removed}))
        elif command == "clear":
            removed = cache.clear(prefix)
            print(json.dumps({"removed": removed, "prefix": prefix}))
    finally:
        dispose_engines()


if __name__ == "__main__":
    setup_logging()
    parser = argparse.ArgumentParser(description="Inspect and prune the farm data cache")
    parser.add_argument("command", choices=["stats", "sweep", "clear"])
    parser.add_argument("prefix", nargs="?", default=None, help="Key or key prefix for clear")
    parser.add_argument("--max-age-days", type=float, default=None, help="Sweep entries older than this")
    args = parser.parse_args()
    asyncio.run(main(args.command, args.prefix, args.max_age_days))
