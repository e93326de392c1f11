"""
Schemas for the generic record workspace
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, Field

from farmdata.schemas.common import DataSource
from farmdata.schemas.query import QueryDescriptor


class ListResult(BaseModel):
    """One resolved page of records"""
    descriptor: QueryDescriptor
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    page: int = Field(default=1)
    total_pages: int = Field(default=1)
    total_count: int = Field(default=0)
    source: DataSource = Field(default=DataSource.REMOTE)
    stale: bool = Field(default=False)
    # Set when a newer list call for the same workspace was issued meanwhile
    superseded: bool = Field(default=False)


class InputKind(str, Enum):
    """Editor control chosen for a field"""
    CHOICE = "choice"
    BOOLEAN = "boolean"
    TEXTAREA = "textarea"
    DATE = "date"
    DATETIME = "datetime"
    NUMBER = "number"
    DECIMAL = "decimal"
    TEXT = "text"


class InputSpec(BaseModel):
    """How one editable field is presented and coerced"""
    name: str
    kind: InputKind
    label: str
    choices: List[Tuple[str, str]] = Field(default_factory=list)  # (value, label)
    step: Optional[str] = Field(default=None)
    required: bool = Field(default=False)
