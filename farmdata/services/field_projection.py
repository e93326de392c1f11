"""
Schema-driven projection

Pure functions from entity metadata to display columns, quick-filter facets,
editor inputs and write payloads. Everything dispatches on FieldType; no
table name appears here.
"""

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from farmdata.core.exceptions import RecordValidationError
from farmdata.schemas.entity import EntityField, EntityMetadata, FieldType
from farmdata.schemas.workspace import InputKind, InputSpec

logger = logging.getLogger(__name__)

MAX_COLUMNS = 9
MAX_QUICK_FILTERS = 3
MAX_FACET_VALUES = 120

YES_NO_CHOICES = [("1", "Yes"), ("0", "No")]
_TRUE_WORDS = {"1", "yes", "y", "true", "on"}
_FALSE_WORDS = {"0", "no", "n", "false", "off"}


class _Unset:
    """Marks a draft value the user left blank; omitted from payloads"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset()


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# Columns and facets

def project_columns(
    entity: EntityMetadata,
    preferred: Optional[Sequence[str]] = None,
    limit: int = MAX_COLUMNS,
) -> List[str]:
    """
    Columns to display: the preferred order filtered to fields the schema has,
    or schema order when none of them exist. The primary key is left out of the
    schema-order fallback; it stays reachable through ``entity.primary_key``.
    """
    available = set(entity.field_names)
    chosen = [name for name in (preferred or []) if name in available]
    if chosen:
        return chosen[:limit]
    return [name for name in entity.field_names if name != entity.primary_key][:limit]


def quick_filter_fields(
    entity: EntityMetadata,
    wanted: Optional[Sequence[str]] = None,
    limit: int = MAX_QUICK_FILTERS,
) -> List[str]:
    available = set(entity.field_names)
    return [name for name in (wanted or []) if name in available][:limit]


def quick_filter_options(
    rows: Iterable[Mapping[str, Any]],
    fields: Sequence[str],
    cap: int = MAX_FACET_VALUES,
) -> Dict[str, List[str]]:
    """
    Distinct non-blank values per field, in first-seen order, taken from the
    rows currently loaded. Facets only describe the visible page.
    """
    rows = list(rows)
    options: Dict[str, List[str]] = {}
    for field in fields:
        seen: List[str] = []
        for row in rows:
            value = row.get(field) if row else None
            if _is_blank(value):
                continue
            text = str(value)
            if text not in seen:
                seen.append(text)
                if len(seen) >= cap:
                    break
        options[field] = seen
    return options


# Editor inputs

def editable_fields(entity: EntityMetadata) -> List[EntityField]:
    return [field for field in entity.fields if not field.read_only]


def field_label(name: str) -> str:
    return name.replace("_", " ").strip().title()


def input_spec(field: EntityField) -> InputSpec:
    """Choose the editor control for a field"""
    base = {"name": field.name, "label": field_label(field.name), "required": not field.nullable}

    if field.enum_values:
        return InputSpec(kind=InputKind.CHOICE, choices=[(v, v) for v in field.enum_values], **base)

    if field.is_numeric and field.is_boolean_flag:
        return InputSpec(kind=InputKind.BOOLEAN, choices=list(YES_NO_CHOICES), **base)

    if field.field_type == FieldType.TEXT:
        return InputSpec(kind=InputKind.TEXTAREA, **base)
    if field.field_type == FieldType.DATE:
        return InputSpec(kind=InputKind.DATE, **base)
    if field.field_type == FieldType.DATETIME:
        return InputSpec(kind=InputKind.DATETIME, **base)
    if field.field_type == FieldType.NUMBER:
        return InputSpec(kind=InputKind.NUMBER, step="1", **base)
    if field.field_type == FieldType.DECIMAL:
        return InputSpec(kind=InputKind.DECIMAL, step="0.01", **base)

    return InputSpec(kind=InputKind.TEXT, **base)


def editor_fields(entity: EntityMetadata) -> List[Tuple[EntityField, InputSpec]]:
    return [(field, input_spec(field)) for field in editable_fields(entity)]


# Coercion

def _coerce_choice(field: EntityField, value: Any) -> Any:
    if _is_blank(value):
        return UNSET
    text = str(value).strip()
    for option in field.enum_values:
        if option.lower() == text.lower():
            return option
    raise RecordValidationError(
        f"'{text}' is not a valid value for {field.name} (expected one of {', '.join(field.enum_values)})"
    )


def _coerce_flag(field: EntityField, value: Any) -> Any:
    if _is_blank(value):
        return UNSET
    if isinstance(value, bool):
        return 1 if value else 0
    text = str(value).strip().lower()
    if text in _TRUE_WORDS:
        return 1
    if text in _FALSE_WORDS:
        return 0
    raise RecordValidationError(f"{field.name} must be Yes or No, got '{value}'")


def _coerce_number(field: EntityField, value: Any) -> Any:
    if _is_blank(value):
        return UNSET
    if isinstance(value, bool):
        raise RecordValidationError(f"{field.name} must be a number")
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise RecordValidationError(f"{field.name} must be a number, got '{value}'")
    if not number.is_finite():
        raise RecordValidationError(f"{field.name} must be a finite number")

    if field.field_type == FieldType.NUMBER:
        if number != number.to_integral_value():
            raise RecordValidationError(f"{field.name} must be a whole number, got '{value}'")
        return int(number)
    return float(number)


def _coerce_temporal(field: EntityField, value: Any) -> Any:
    if _is_blank(value):
        return UNSET
    if isinstance(value, datetime):
        if field.field_type == FieldType.DATE:
            return value.date().isoformat()
        return value.isoformat(sep=" ", timespec="seconds")
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def coerce_input(field: EntityField, value: Any) -> Any:
    """
    Convert one draft value to its payload form. Blank numeric, date and choice
    inputs become UNSET rather than 0 or an empty string.
    """
    if field.enum_values:
        return _coerce_choice(field, value)
    if field.is_numeric:
        if field.is_boolean_flag:
            return _coerce_flag(field, value)
        return _coerce_number(field, value)
    if field.field_type in (FieldType.DATE, FieldType.DATETIME):
        return _coerce_temporal(field, value)
    if value is None:
        return UNSET
    return str(value)


def build_payload(entity: EntityMetadata, draft: Mapping[str, Any], for_update: bool = False) -> Dict[str, Any]:
    """
    Payload for create/update. Read-only fields and UNSET values are never
    sent; the primary key is dropped on update since it travels in the URL.
    """
    payload: Dict[str, Any] = {}
    known = set()
    for field in editable_fields(entity):
        known.add(field.name)
        if for_update and field.name == entity.primary_key:
            continue
        if field.name not in draft:
            continue
        value = coerce_input(field, draft[field.name])
        if value is UNSET:
            continue
        payload[field.name] = value

    ignored = [name for name in draft if name not in known]
    if ignored:
        logger.debug(f"Ignoring non-writable fields for {entity.table}: {ignored}")

    if not payload:
        raise RecordValidationError(f"No writable values supplied for {entity.table}")
    return payload
