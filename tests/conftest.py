"""
Pytest configuration and shared fixtures

Everything is built in memory: a dict-backed durable store, a controllable
millisecond clock, and httpx clients driven by MockTransport handlers.
"""

from typing import Callable

import httpx
import pytest

from farmdata.core.database import dispose_engines
from farmdata.schemas.entity import EntityMetadata
from farmdata.schemas.query import TenantContext
from farmdata.services.cache_store import CacheStore
from farmdata.services.cache_through import CacheThroughResolver
from farmdata.services.farm_api import FarmApiClient
from farmdata.services.kv_store import MemoryKeyValueStore
from farmdata.services.query_keys import QueryKeyComposer

T0 = 1_700_000_000_000


class FakeClock:
    """Millisecond clock the tests move by hand"""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def cache(kv, clock):
    return CacheStore(kv, clock=clock)


@pytest.fixture
def resolver(cache):
    return CacheThroughResolver(cache, fallback_on_rejection=False)


@pytest.fixture
def tenant():
    return TenantContext(farm_id="7", user_id="42")


@pytest.fixture
def composer(tenant):
    return QueryKeyComposer(tenant)


@pytest.fixture
def make_api() -> Callable[[Callable[[httpx.Request], httpx.Response]], FarmApiClient]:
    """Build a FarmApiClient whose requests are answered by ``handler``"""

    def _make(handler, token_provider=None):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return FarmApiClient(
            base_url="http://farm.test",
            prefix="/api",
            timeout=5.0,
            token_provider=token_provider,
            http_client=http_client,
        )

    return _make


@pytest.fixture
def sql_store_cleanup():
    yield
    dispose_engines()


@pytest.fixture
def batch_entity():
    """Schema for broiler_batches as the entities endpoint returns it"""
    return EntityMetadata(**{
        "table": "broiler_batches",
        "entity_label": "Broiler Batches",
        "primary_key": "batch_id",
        "module_key": "BROILERS",
        "fields": [
            {"name": "batch_id", "field_type": "number", "column_type": "int(11)", "is_primary": True, "read_only": True, "nullable": False},
            {"name": "batch_code", "field_type": "string", "column_type": "varchar(40)", "nullable": False},
            {"name": "start_date", "field_type": "date", "column_type": "date"},
            {"name": "initial_count", "field_type": "number", "column_type": "int(11)"},
            {"name": "current_count", "field_type": "number", "column_type": "int(11)"},
            {"name": "buy_price_per_bird", "field_type": "decimal", "column_type": "decimal(10,2)"},
            {"name": "status", "field_type": "string", "column_type": "enum('ACTIVE','CLOSED')", "enum_values": ["ACTIVE", "CLOSED"]},
            {"name": "housing_id", "field_type": "number", "column_type": "int(11)"},
            {"name": "is_vaccinated", "field_type": "number", "column_type": "tinyint(1)"},
            {"name": "notes", "field_type": "text", "column_type": "text"},
            {"name": "metadata", "field_type": "json", "column_type": "json"},
            {"name": "created_at", "field_type": "datetime", "column_type": "datetime", "read_only": True},
        ],
    })


@pytest.fixture
def entities_payload(batch_entity):
    daily = {
        "table": "broiler_daily_logs",
        "entity_label": "Daily Logs",
        "primary_key": "log_id",
        "module_key": "BROILERS",
        "fields": [
            {"name": "log_id", "field_type": "number", "is_primary": True, "read_only": True},
            {"name": "batch_id", "field_type": "number"},
            {"name": "log_date", "field_type": "date"},
            {"name": "feed_kg", "field_type": "decimal"},
        ],
    }
    return {"ok": True, "entities": [batch_entity.dict(), daily]}
