"""
Common schemas shared across services
"""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


class DataSource(str, Enum):
    """Where a resolved payload came from"""
    REMOTE = "remote"
    CACHE = "cache"


class Resolved(BaseModel):
    """Payload plus provenance, as returned by the cache-through resolver"""
    payload: Any = Field(default=None)
    source: DataSource = Field(default=DataSource.REMOTE)
    stale: bool = Field(default=False)

    @property
    def from_cache(self) -> bool:
        return self.source == DataSource.CACHE


class WriteOutcome(str, Enum):
    """Result of a create/update/delete call"""
    COMMITTED = "committed"
    QUEUED = "queued"  # accepted by the API, not yet in the authoritative store


class WriteResult(BaseModel):
    """Outcome of a record write"""
    outcome: WriteOutcome = Field(default=WriteOutcome.COMMITTED)
    record: Optional[dict] = Field(default=None)
    record_id: Optional[Any] = Field(default=None)
    message: Optional[str] = Field(default=None)

    @property
    def committed(self) -> bool:
        return self.outcome == WriteOutcome.COMMITTED

    @property
    def queued(self) -> bool:
        return self.outcome == WriteOutcome.QUEUED
