"""
Entity Metadata Registry

Loads each module's entity schemas once per session through the cache-through
resolver. Schemas change rarely, so cached copies are accepted for days.
"""

import logging
from typing import Dict, List, Optional

from farmdata.core.config import settings
from farmdata.core.exceptions import ApiUnavailableError, EntityNotFoundError
from farmdata.schemas.entity import EntityMetadata, ModuleSchema
from farmdata.services.cache_through import CacheThroughResolver
from farmdata.services.farm_api import FarmApiClient
from farmdata.services.query_keys import QueryKeyComposer

logger = logging.getLogger(__name__)


class EntityRegistry:
    """Per-module entity metadata, memoised for the lifetime of the registry"""

    def __init__(
        self,
        api: FarmApiClient,
        resolver: CacheThroughResolver,
        composer: QueryKeyComposer,
        max_age_ms: Optional[int] = None,
    ):
        self.api = api
        self.resolver = resolver
        self.composer = composer
        self.max_age_ms = max_age_ms or settings.CACHE_TTL_ENTITIES_MS
        self._modules: Dict[str, ModuleSchema] = {}

    async def load_module(self, module_key: str, refresh: bool = False) -> ModuleSchema:
        module_key = str(module_key).strip().upper()
        if not refresh and module_key in self._modules:
            return self._modules[module_key]

        async def fetch():
            body = await self.api.get_entities(module_key)
            if not isinstance(body.get("entities"), list):
                raise ApiUnavailableError(f"Entity listing for {module_key} has no entities")
            return body

        resolved = await self.resolver.resolve(self.composer.entities(module_key), self.max_age_ms, fetch)

        entities = []
        for raw in resolved.payload.get("entities") or []:
            entity = EntityMetadata(**raw)
            if not entity.module_key:
                entity.module_key = module_key
            entities.append(entity)

        schema = ModuleSchema(
            module_key=module_key,
            entities=entities,
            source=resolved.source,
            stale=resolved.stale,
        )
        self._modules[module_key] = schema
        logger.info(f"Loaded {len(entities)} entities for {module_key} from {resolved.source.value}")
        return schema

    async def get_schema(self, module_key: str) -> List[EntityMetadata]:
        schema = await self.load_module(module_key)
        return list(schema.entities)

    async def get_entity(self, module_key: str, table: str) -> EntityMetadata:
        schema = await self.load_module(module_key)
        for entity in schema.entities:
            if entity.table == table:
                return entity
        raise EntityNotFoundError(f"{table} is not an entity of module {schema.module_key}")

    def forget(self, module_key: Optional[str] = None) -> None:
        """Drop memoised schemas (all modules when no key is given)"""
        if module_key is None:
            self._modules.clear()
        else:
            self._modules.pop(str(module_key).strip().upper(), None)
