"""
Tests for the entity metadata registry
"""

from unittest.mock import AsyncMock, Mock

import pytest

from farmdata.core.exceptions import ApiTransportError, ApiUnavailableError, EntityNotFoundError
from farmdata.schemas.common import DataSource
from farmdata.schemas.entity import FieldType
from farmdata.services.entity_registry import EntityRegistry


@pytest.fixture
def api(entities_payload):
    api = Mock()
    api.get_entities = AsyncMock(return_value=entities_payload)
    return api


@pytest.fixture
def registry(api, resolver, composer):
    return EntityRegistry(api, resolver, composer)


class TestEntityRegistry:
    """Schemas are fetched once per module and looked up by table"""

    @pytest.mark.asyncio
    async def test_load_module_is_memoised(self, registry, api):
        first = await registry.load_module("broilers")
        second = await registry.load_module("BROILERS")

        assert first is second
        assert first.tables == ["broiler_batches", "broiler_daily_logs"]
        assert first.source == DataSource.REMOTE
        api.get_entities.assert_awaited_once_with("BROILERS")

    @pytest.mark.asyncio
    async def test_refresh_refetches(self, registry, api):
        await registry.load_module("BROILERS")
        await registry.load_module("BROILERS", refresh=True)
        assert api.get_entities.await_count == 2

    @pytest.mark.asyncio
    async def test_get_entity(self, registry):
        entity = await registry.get_entity("BROILERS", "broiler_daily_logs")
        assert entity.primary_key == "log_id"
        assert entity.module_key == "BROILERS"
        assert entity.field("feed_kg").field_type == FieldType.DECIMAL

    @pytest.mark.asyncio
    async def test_unknown_table(self, registry):
        with pytest.raises(EntityNotFoundError):
            await registry.get_entity("BROILERS", "layer_flocks")

    @pytest.mark.asyncio
    async def test_get_schema_lists_entities(self, registry):
        entities = await registry.get_schema("BROILERS")
        assert [entity.label for entity in entities] == ["Broiler Batches", "Daily Logs"]

    @pytest.mark.asyncio
    async def test_offline_reload_uses_cached_schema(self, registry, api):
        await registry.load_module("BROILERS")
        registry.forget("broilers")
        api.get_entities.side_effect = ApiTransportError("offline")

        schema = await registry.load_module("BROILERS")

        assert schema.source == DataSource.CACHE
        assert schema.stale is True
        assert "broiler_batches" in schema.tables

    @pytest.mark.asyncio
    async def test_malformed_listing_without_cache_fails(self, registry, api):
        api.get_entities.return_value = {"ok": True}
        with pytest.raises(ApiUnavailableError):
            await registry.load_module("LAYERS")
