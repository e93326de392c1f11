"""
Dashboard, report endpoint and sync status reads, resolved through the cache
"""

import logging
from typing import Any, Mapping, Optional

from farmdata.core.config import settings
from farmdata.schemas.common import Resolved
from farmdata.services.cache_through import CacheThroughResolver
from farmdata.services.farm_api import FarmApiClient
from farmdata.services.query_keys import QueryKeyComposer

logger = logging.getLogger(__name__)


class DashboardService:
    """Cached overview endpoints"""

    def __init__(
        self,
        api: FarmApiClient,
        resolver: CacheThroughResolver,
        composer: QueryKeyComposer,
    ):
        self.api = api
        self.resolver = resolver
        self.composer = composer

    async def overview(self, max_age_ms: Optional[int] = None) -> Resolved:
        return await self.resolver.resolve(
            self.composer.dashboard(),
            max_age_ms or settings.CACHE_TTL_DASHBOARD_MS,
            self.api.get_dashboard,
        )

    async def report(self, name: str, params: Optional[Mapping[str, Any]] = None, max_age_ms: Optional[int] = None) -> Resolved:
        """Server-side report endpoint (``GET /reports/<name>``)"""
        async def fetch():
            return await self.api.get_report(name, params)

        return await self.resolver.resolve(
            self.composer.report(name, params),
            max_age_ms or settings.CACHE_TTL_REPORTS_MS,
            fetch,
        )

    async def sync_status(self, max_age_ms: Optional[int] = None) -> Resolved:
        resolved = await self.resolver.resolve(
            self.composer.sync_status(),
            max_age_ms or settings.CACHE_TTL_SYNC_STATUS_MS,
            self.api.get_sync_status,
        )
        if resolved.stale:
            logger.info("Sync status served from cache")
        return resolved
