"""
Query descriptor schemas

A descriptor is the full set of parameters that identifies one record read.
"""

from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, validator


class SortDirection(str, Enum):
    """Sort direction understood by the records endpoint"""
    ASC = "ASC"
    DESC = "DESC"


class TenantContext(BaseModel):
    """Acting farm and user; keys are namespaced by both"""
    farm_id: Optional[str] = Field(default=None)
    user_id: Optional[str] = Field(default=None)

    @validator("farm_id", "user_id", pre=True)
    def stringify(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class QueryDescriptor(BaseModel):
    """Entity, pagination, sort, filters and search for one list call"""
    module_key: str
    table: str
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1)
    search: Optional[str] = Field(default=None)
    sort_by: Optional[str] = Field(default=None)
    sort_dir: Optional[SortDirection] = Field(default=None)
    filters: Dict[str, str] = Field(default_factory=dict)

    @validator("module_key", pre=True)
    def upper_module(cls, v):
        return str(v or "").strip().upper()

    @validator("search", "sort_by", pre=True)
    def blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @validator("sort_dir", pre=True)
    def upper_sort_dir(cls, v):
        if v is None or v == "":
            return None
        if isinstance(v, SortDirection):
            return v
        return str(v).strip().upper()

    @validator("filters", pre=True)
    def clean_filters(cls, v):
        # Blank filter values mean "no filter"
        cleaned = {}
        for field, value in (v or {}).items():
            if value is None:
                continue
            text = str(value).strip()
            if text:
                cleaned[str(field)] = text
        return cleaned

    @property
    def scope(self) -> str:
        return f"{self.module_key}:{self.table}"

    def derive(self, **changes: Any) -> "QueryDescriptor":
        """Copy with changes, re-running validation"""
        data = self.dict()
        data.update(changes)
        return QueryDescriptor(**data)

    def to_params(self) -> Dict[str, Any]:
        """Query-string parameters for GET /records (module and table excluded)"""
        params: Dict[str, Any] = {"page": self.page, "page_size": self.page_size}
        if self.search:
            params["search"] = self.search
        if self.sort_by:
            params["sort_by"] = self.sort_by
        if self.sort_dir:
            params["sort_dir"] = self.sort_dir.value
        for field in sorted(self.filters):
            params[f"filter_{field}"] = self.filters[field]
        return params
