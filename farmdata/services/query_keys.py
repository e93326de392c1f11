"""
Query Key Composer

Turns query descriptors into cache keys. Keys are pure functions of the
descriptor's meaning: filter maps are serialised with sorted keys and blank
values dropped, so insertion order never changes the key. Every key carries the
acting farm and user so one farm's cached rows are never served to another.
"""

import hashlib
import json
from typing import Any, Dict, Mapping, Optional

from farmdata.schemas.query import QueryDescriptor, TenantContext

ANONYMOUS = "anon"


def canonical_json(value: Any) -> str:
    """Stable JSON text: sorted keys, no whitespace variance"""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def digest(value: Any) -> str:
    return hashlib.sha1(canonical_json(value).encode("utf-8")).hexdigest()


def _clean_params(params: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    cleaned = {}
    for name, value in (params or {}).items():
        if value is None:
            continue
        text = str(value).strip()
        if text:
            cleaned[str(name)] = text
    return cleaned


def compose_key(descriptor: QueryDescriptor, tenant: Optional[TenantContext] = None) -> str:
    """Cache key for one record list query"""
    tenant = tenant or TenantContext()
    identity = {
        "page": descriptor.page,
        "page_size": descriptor.page_size,
        "search": descriptor.search,
        "sort_by": descriptor.sort_by,
        "sort_dir": descriptor.sort_dir.value if descriptor.sort_dir else None,
        "filters": dict(descriptor.filters),
    }
    return ":".join([
        "records",
        tenant.farm_id or ANONYMOUS,
        tenant.user_id or ANONYMOUS,
        descriptor.module_key,
        descriptor.table,
        digest(identity),
    ])


class QueryKeyComposer:
    """Key factory bound to one tenant context"""

    def __init__(self, tenant: Optional[TenantContext] = None):
        self.tenant = tenant or TenantContext()

    @property
    def farm(self) -> str:
        return self.tenant.farm_id or ANONYMOUS

    @property
    def user(self) -> str:
        return self.tenant.user_id or ANONYMOUS

    def records(self, descriptor: QueryDescriptor) -> str:
        return compose_key(descriptor, self.tenant)

    def entities(self, module_key: str) -> str:
        return f"module:{self.farm}:{str(module_key).upper()}:entities"

    def report_source(self, module_key: str, table: str, params: Optional[Mapping[str, Any]] = None) -> str:
        return f"report:{self.farm}:{self.user}:{str(module_key).upper()}:{table}:{digest(_clean_params(params))}"

    def report(self, name: str, params: Optional[Mapping[str, Any]] = None) -> str:
        return f"reports:{self.farm}:{self.user}:{name}:{digest(_clean_params(params))}"

    def dashboard(self) -> str:
        return f"dashboard:{self.farm}:{self.user}:overview"

    def sync_status(self) -> str:
        return f"sync:{self.farm}:status"
