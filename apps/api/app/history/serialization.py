"""Canonical text form for edit history values.

None is stored as SQL NULL, strings are stored verbatim, so an empty string and the
literal "null" both stay distinguishable from a missing value.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from app.core.clock import ensure_utc
from app.pipeline.models import Job


def serialize_value(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return ensure_utc(value).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def deserialize_value(raw: str | None, python_type: type) -> Any:
    if raw is None:
        return None
    if python_type is bool:
        return raw == "true"
    if python_type is int:
        return int(raw)
    if python_type is Decimal:
        return Decimal(raw)
    if python_type is datetime:
        parsed = datetime.fromisoformat(raw)
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)
    if python_type is date:
        return date.fromisoformat(raw)
    return raw


def deserialize_field(field_name: str, raw: str | None) -> Any:
    """Restore a stored history value to the Python type of the matching Job column."""

    column = Job.__table__.columns.get(field_name)
    if column is None:
        return raw
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        return raw
    return deserialize_value(raw, python_type)


def values_equal(old_value: Any, new_value: Any) -> bool:
    return serialize_value(old_value) == serialize_value(new_value)
