"""
Entity metadata schemas

Field lists are supplied by the API per module and drive every column,
filter and form decision made on the client.
"""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, validator

from farmdata.schemas.common import DataSource


class FieldType(str, Enum):
    """Storage-derived field type"""
    TEXT = "text"
    NUMBER = "number"
    DECIMAL = "decimal"
    DATE = "date"
    DATETIME = "datetime"
    STRING = "string"

    @classmethod
    def parse(cls, value) -> "FieldType":
        """Unknown server types (e.g. json) are handled as strings"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.STRING


class EntityField(BaseModel):
    """One column of an entity"""
    name: str
    field_type: FieldType = Field(default=FieldType.STRING)
    enum_values: List[str] = Field(default_factory=list)
    read_only: bool = Field(default=False)
    column_type: Optional[str] = Field(default=None)
    data_type: Optional[str] = Field(default=None)
    nullable: bool = Field(default=True)
    is_primary: bool = Field(default=False)

    @validator("field_type", pre=True)
    def parse_field_type(cls, v):
        return FieldType.parse(v)

    @validator("enum_values", pre=True)
    def clean_enum_values(cls, v):
        return [str(item) for item in (v or []) if str(item).strip()]

    @property
    def is_boolean_flag(self) -> bool:
        """Numeric column declared as tinyint(1)"""
        return str(self.column_type or "").lower().startswith("tinyint(1)")

    @property
    def is_numeric(self) -> bool:
        return self.field_type in (FieldType.NUMBER, FieldType.DECIMAL)


class EntityMetadata(BaseModel):
    """Schema for one table"""
    table: str
    entity_label: Optional[str] = Field(default=None)
    primary_key: Optional[str] = Field(default=None)
    module_key: Optional[str] = Field(default=None)
    fields: List[EntityField] = Field(default_factory=list)

    @property
    def label(self) -> str:
        return self.entity_label or self.table.replace("_", " ").title()

    @property
    def field_names(self) -> List[str]:
        return [field.name for field in self.fields]

    def field(self, name: str) -> Optional[EntityField]:
        for field in self.fields:
            if field.name == name:
                return field
        return None


class ModuleSchema(BaseModel):
    """Every entity of a module, plus where the metadata came from"""
    module_key: str
    entities: List[EntityMetadata] = Field(default_factory=list)
    source: DataSource = Field(default=DataSource.REMOTE)
    stale: bool = Field(default=False)

    @property
    def tables(self) -> List[str]:
        return [entity.table for entity in self.entities]
