"""
FarmDataClient

Wires the durable store, cache, resolver, API client and services together
for one session. Build it with ``from_settings()`` for the configured SQL
store, or pass explicit pieces (an in-memory store, a mocked httpx client) in
tests.
"""

import logging
from typing import Dict, Optional

import httpx

from farmdata.core.config import settings
from farmdata.core.scheduler import CacheMaintenanceScheduler
from farmdata.schemas.query import TenantContext
from farmdata.services.cache_store import CacheStore
from farmdata.services.cache_through import CacheThroughResolver
from farmdata.services.dashboard_service import DashboardService
from farmdata.services.entity_registry import EntityRegistry
from farmdata.services.farm_api import FarmApiClient
from farmdata.services.kv_store import KeyValueStore, MemoryKeyValueStore, SqlKeyValueStore
from farmdata.services.query_keys import QueryKeyComposer
from farmdata.services.record_workspace import RecordWorkspace
from farmdata.services.report_pipeline import ReportPipeline
from farmdata.services.sequencing import RequestSequencer
from farmdata.services.session_service import SessionService

logger = logging.getLogger(__name__)


class FarmDataClient:
    """One session's view of the farm API"""

    def __init__(
        self,
        kv: Optional[KeyValueStore] = None,
        tenant: Optional[TenantContext] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        max_entries: Optional[int] = None,
        fallback_on_rejection: Optional[bool] = None,
    ):
        self.kv = kv if kv is not None else MemoryKeyValueStore()
        self.cache = CacheStore(self.kv, max_entries=max_entries)
        self.session = SessionService(self.kv, self.cache)
        self.api = FarmApiClient(
            base_url=base_url,
            token_provider=self.session.get_token,
            http_client=http_client,
        )
        self.resolver = CacheThroughResolver(self.cache, fallback_on_rejection=fallback_on_rejection)
        self.sequencer = RequestSequencer()
        self.set_tenant(tenant)
        self._workspaces: Dict[str, RecordWorkspace] = {}
        self._reports: Dict[str, ReportPipeline] = {}
        self.maintenance: Optional[CacheMaintenanceScheduler] = None

    @classmethod
    def from_settings(cls, tenant: Optional[TenantContext] = None, **kwargs) -> "FarmDataClient":
        kv = SqlKeyValueStore(settings.STORAGE_DATABASE_URL, settings.STORAGE_NAMESPACE)
        kwargs.setdefault("max_entries", settings.CACHE_MAX_ENTRIES)
        return cls(kv=kv, tenant=tenant, **kwargs)

    def set_tenant(self, tenant: Optional[TenantContext]) -> None:
        """Switch farm/user context; keys and memoised schemas follow"""
        self.tenant = tenant or TenantContext()
        self.composer = QueryKeyComposer(self.tenant)
        self.registry = EntityRegistry(self.api, self.resolver, self.composer)
        self.dashboard = DashboardService(self.api, self.resolver, self.composer)
        self._workspaces = {}
        self._reports = {}

    async def workspace(self, module_key: str, table: str) -> RecordWorkspace:
        module_key = module_key.upper()
        key = f"{module_key}:{table}"
        if key not in self._workspaces:
            entity = await self.registry.get_entity(module_key, table)
            self._workspaces[key] = RecordWorkspace(
                self.api,
                self.resolver,
                self.composer,
                entity,
                module_key=module_key,
                sequencer=self.sequencer,
            )
        return self._workspaces[key]

    def module_report(self, module_key: str) -> ReportPipeline:
        """Report pipeline for a module; multi-source for broilers, per-table otherwise"""
        module_key = module_key.upper()
        if module_key not in self._reports:
            self._reports[module_key] = ReportPipeline(
                self.api,
                self.resolver,
                self.composer,
                module_key=module_key,
                sequencer=self.sequencer,
            )
        return self._reports[module_key]

    def broiler_report(self) -> ReportPipeline:
        return self.module_report("BROILERS")

    async def start_maintenance(self) -> CacheMaintenanceScheduler:
        if self.maintenance is None:
            self.maintenance = CacheMaintenanceScheduler(self.cache)
        if settings.CACHE_SWEEP_ENABLED:
            await self.maintenance.start()
        return self.maintenance

    def logout(self) -> int:
        self.registry.forget()
        self._workspaces = {}
        self._reports = {}
        return self.session.logout()

    async def aclose(self) -> None:
        if self.maintenance is not None:
            await self.maintenance.stop()
        await self.api.aclose()

    async def __aenter__(self) -> "FarmDataClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
