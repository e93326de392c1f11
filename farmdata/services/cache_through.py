"""
Cache-Through Fetch Orchestrator

Always asks the remote side first. A successful answer is written through to
the cache; a failed one is replaced by a cached snapshot inside the caller's
staleness window. With nothing cached the original error propagates, so an
empty result is never fabricated.
"""

import logging
import math
from typing import Any, Awaitable, Callable, Optional

from farmdata.core.config import settings
from farmdata.core.exceptions import ApiRejectedError
from farmdata.schemas.common import DataSource, Resolved
from farmdata.services.cache_store import NOT_FOUND, CacheStore

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]


class CacheThroughResolver:
    """Resolves cache keys against a remote fetcher with cache fallback"""

    def __init__(self, cache: CacheStore, fallback_on_rejection: Optional[bool] = None):
        self.cache = cache
        self.fallback_on_rejection = (
            settings.CACHE_FALLBACK_ON_REJECTION
            if fallback_on_rejection is None
            else fallback_on_rejection
        )

    def _may_fall_back(self, error: Exception) -> bool:
        if isinstance(error, ApiRejectedError):
            return self.fallback_on_rejection
        return True

    async def resolve(self, key: str, max_age_ms: float, fetcher: Fetcher) -> Resolved:
        try:
            payload = await fetcher()
        except Exception as e:
            if not self._may_fall_back(e):
                raise

            cached = self.cache.read(key, max_age_ms if max_age_ms is not None else math.inf)
            if cached is NOT_FOUND:
                logger.warning(f"Remote fetch failed for {key} with no usable cache entry: {e}")
                raise

            logger.warning(f"Serving cached payload for {key} after remote failure: {e}")
            return Resolved(payload=cached, source=DataSource.CACHE, stale=True)

        self.cache.write(key, payload)
        logger.debug(f"Resolved {key} from remote")
        return Resolved(payload=payload, source=DataSource.REMOTE, stale=False)
