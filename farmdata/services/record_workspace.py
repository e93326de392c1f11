"""
Generic Record Workspace

List, filter, paginate and edit the records of any entity, driven entirely by
its EntityMetadata and the declarative layout tables. Reads go through the
cache-through resolver; writes go straight to the API and never fall back.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from farmdata.core import layouts
from farmdata.core.config import settings
from farmdata.core.exceptions import ApiUnavailableError, RecordValidationError
from farmdata.schemas.common import WriteOutcome, WriteResult
from farmdata.schemas.entity import EntityField, EntityMetadata
from farmdata.schemas.query import QueryDescriptor
from farmdata.schemas.workspace import InputSpec, ListResult
from farmdata.services import field_projection
from farmdata.services.cache_through import CacheThroughResolver
from farmdata.services.farm_api import FarmApiClient
from farmdata.services.query_keys import QueryKeyComposer
from farmdata.services.sequencing import RequestSequencer

logger = logging.getLogger(__name__)


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class RecordWorkspace:
    """Record management surface for one entity"""

    def __init__(
        self,
        api: FarmApiClient,
        resolver: CacheThroughResolver,
        composer: QueryKeyComposer,
        entity: EntityMetadata,
        module_key: Optional[str] = None,
        sequencer: Optional[RequestSequencer] = None,
        max_age_ms: Optional[int] = None,
        page_size: Optional[int] = None,
        preferred_columns: Optional[Sequence[str]] = None,
        quick_filter_candidates: Optional[Sequence[str]] = None,
        sort_override: Optional[Mapping[str, str]] = None,
    ):
        self.api = api
        self.resolver = resolver
        self.composer = composer
        self.entity = entity
        self.module_key = str(module_key or entity.module_key or "").upper()
        if not self.module_key:
            raise RecordValidationError(f"No module key known for {entity.table}")
        self.sequencer = sequencer or RequestSequencer()
        self.max_age_ms = max_age_ms or settings.CACHE_TTL_RECORDS_MS
        self.page_size = page_size or settings.DEFAULT_PAGE_SIZE

        table = entity.table
        self._preferred_columns = list(
            preferred_columns if preferred_columns is not None else layouts.preferred_columns(table)
        )
        self._quick_filter_candidates = list(
            quick_filter_candidates if quick_filter_candidates is not None else layouts.quick_filter_candidates(table)
        )
        self._sort_override = dict(sort_override) if sort_override is not None else layouts.default_sort(table)

        self.descriptor = self.default_descriptor()
        self.result: Optional[ListResult] = None

    @property
    def table(self) -> str:
        return self.entity.table

    @property
    def target(self) -> str:
        return f"workspace:{self.module_key}:{self.table}"

    def default_descriptor(self) -> QueryDescriptor:
        sort = self._sort_override or {}
        return QueryDescriptor(
            module_key=self.module_key,
            table=self.table,
            page=1,
            page_size=self.page_size,
            sort_by=sort.get("sort_by"),
            sort_dir=sort.get("sort_dir"),
        )

    # Reads

    async def list(self, descriptor: Optional[QueryDescriptor] = None) -> ListResult:
        """
        Resolve one page. The workspace's current result only changes when this
        call is still the most recent one issued; an overtaken call returns its
        result flagged ``superseded`` and leaves the current state alone.
        """
        descriptor = descriptor or self.descriptor
        if descriptor.module_key != self.module_key or descriptor.table != self.table:
            raise RecordValidationError(f"Descriptor for {descriptor.scope} used on {self.module_key}:{self.table}")

        token = self.sequencer.issue(self.target)
        self.descriptor = descriptor

        async def fetch():
            body = await self.api.get_records(self.module_key, self.table, descriptor.to_params())
            if not isinstance(body.get("rows"), list):
                raise ApiUnavailableError(f"Record listing for {descriptor.scope} has no rows")
            return body

        resolved = await self.resolver.resolve(self.composer.records(descriptor), self.max_age_ms, fetch)
        payload = resolved.payload

        result = ListResult(
            descriptor=descriptor,
            rows=payload.get("rows") or [],
            page=_as_int(payload.get("page"), descriptor.page) or descriptor.page,
            total_pages=_as_int(payload.get("total_pages"), 1) or 1,
            total_count=_as_int(payload.get("total_count"), 0),
            source=resolved.source,
            stale=resolved.stale,
        )

        if self.sequencer.is_latest(self.target, token):
            self.result = result
        else:
            result.superseded = True
        return result

    async def refresh(self) -> ListResult:
        return await self.list(self.descriptor)

    async def goto_page(self, page: int) -> ListResult:
        return await self.list(self.descriptor.derive(page=max(1, int(page))))

    async def search(self, term: Optional[str]) -> ListResult:
        return await self.list(self.descriptor.derive(search=term, page=1))

    async def apply_quick_filter(self, field: str, value: Any) -> ListResult:
        """Re-query with ``filter_<field>=value``; rows are never filtered locally"""
        if self.entity.field(field) is None:
            raise RecordValidationError(f"{field} is not a field of {self.table}")
        filters = dict(self.descriptor.filters)
        if value is None or not str(value).strip():
            filters.pop(field, None)
        else:
            filters[field] = str(value)
        return await self.list(self.descriptor.derive(filters=filters, page=1))

    async def clear_quick_filter(self, field: Optional[str] = None) -> ListResult:
        """Remove one quick filter, or all of them"""
        filters = {} if field is None else {k: v for k, v in self.descriptor.filters.items() if k != field}
        return await self.list(self.descriptor.derive(filters=filters, page=1))

    @property
    def rows(self) -> List[Dict[str, Any]]:
        return list(self.result.rows) if self.result else []

    # Projection

    @property
    def columns(self) -> List[str]:
        return field_projection.project_columns(self.entity, self._preferred_columns)

    @property
    def quick_filter_fields(self) -> List[str]:
        return field_projection.quick_filter_fields(self.entity, self._quick_filter_candidates)

    def quick_filter_options(self) -> Dict[str, List[str]]:
        """Facet values from the currently loaded page only"""
        return field_projection.quick_filter_options(self.rows, self.quick_filter_fields)

    def editor_fields(self) -> List[Tuple[EntityField, InputSpec]]:
        return field_projection.editor_fields(self.entity)

    def build_payload(self, draft: Mapping[str, Any], for_update: bool = False) -> Dict[str, Any]:
        return field_projection.build_payload(self.entity, draft, for_update=for_update)

    def record_id(self, row: Mapping[str, Any]) -> Any:
        if not self.entity.primary_key:
            return None
        return row.get(self.entity.primary_key)

    # Writes

    def _require_primary_key(self, record_id: Any) -> None:
        if not self.entity.primary_key:
            raise RecordValidationError(f"{self.table} has no primary key; records cannot be addressed")
        if record_id is None or str(record_id).strip() == "":
            raise RecordValidationError(f"A {self.entity.primary_key} is required")

    def _write_result(self, action: str, body: Dict[str, Any], record_id: Any = None) -> WriteResult:
        record = body.get("record") if isinstance(body.get("record"), dict) else None
        if record and self.entity.primary_key and record.get(self.entity.primary_key) is not None:
            record_id = record.get(self.entity.primary_key)

        if body.get("queued"):
            logger.info(f"{action} on {self.table} queued by the server: {body.get('message') or 'pending sync'}")
            return WriteResult(
                outcome=WriteOutcome.QUEUED,
                record=record,
                record_id=record_id,
                message=body.get("message"),
            )

        logger.info(f"{action} on {self.table} committed (id={record_id})")
        return WriteResult(
            outcome=WriteOutcome.COMMITTED,
            record=record,
            record_id=record_id,
            message=body.get("message"),
        )

    async def create(self, draft: Mapping[str, Any]) -> WriteResult:
        payload = self.build_payload(draft)
        body = await self.api.create_record(self.module_key, self.table, payload)
        return self._write_result("Create", body)

    async def update(self, record_id: Any, draft: Mapping[str, Any]) -> WriteResult:
        self._require_primary_key(record_id)
        payload = self.build_payload(draft, for_update=True)
        body = await self.api.update_record(self.module_key, self.table, record_id, payload)
        return self._write_result("Update", body, record_id)

    async def delete(self, record_id: Any) -> WriteResult:
        self._require_primary_key(record_id)
        body = await self.api.delete_record(self.module_key, self.table, record_id)
        return self._write_result("Delete", body, record_id)
