"""
Field values are stored as text. Strings go in verbatim; everything else is
JSON-encoded. Decoding needs the field's type tag: the stored text carries no
type information of its own.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any

from tancms.models import FieldType

_NUMERIC = {FieldType.NUMBER, FieldType.DECIMAL}
_STRUCTURED = {FieldType.RELATION, FieldType.MEDIA}


def encode_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return json.dumps(value)


def _as_field_type(field_type: FieldType | str) -> FieldType | None:
    try:
        return FieldType(str(getattr(field_type, "value", field_type)).upper())
    except ValueError:
        return None


def decode_value(raw: str | None, field_type: FieldType | str) -> Any:
    """Best-effort typed read. Unparseable text comes back unchanged."""
    if raw is None:
        return None

    ft = _as_field_type(field_type)

    if ft in _NUMERIC:
        try:
            number = json.loads(raw)
        except ValueError:
            return raw
        return number if isinstance(number, (int, float)) and not isinstance(number, bool) else raw

    if ft == FieldType.BOOLEAN:
        s = raw.strip().lower()
        if s == "true":
            return True
        if s == "false":
            return False
        return raw

    if ft == FieldType.DATE:
        try:
            return date.fromisoformat(raw.strip())
        except ValueError:
            return raw

    if ft == FieldType.DATETIME:
        try:
            return datetime.fromisoformat(raw.strip())
        except ValueError:
            return raw

    if ft == FieldType.JSON:
        try:
            return json.loads(raw)
        except ValueError:
            return raw

    if ft in _STRUCTURED:
        # plain ids are stored verbatim; lists/objects were JSON-encoded
        if raw.lstrip().startswith(("[", "{")):
            try:
                return json.loads(raw)
            except ValueError:
                return raw
        return raw

    return raw
