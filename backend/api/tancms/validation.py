"""Request-level checks. The stores accept whatever they are given."""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Mapping

from tancms.errors import ValidationError

SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def validate_slug(slug: str | None) -> None:
    if slug and not SLUG_RE.fullmatch(slug):
        raise ValidationError(
            message="Slug must contain only lowercase letters, numbers, and hyphens",
            code="entry.invalid_slug",
            meta={"slug": slug},
        )


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_field_values(content_type: Mapping[str, Any], field_values: Iterable[Dict[str, Any]]) -> None:
    """Every field_id must belong to the type and every required field must have a value."""
    fields = {f["id"]: f for f in content_type["fields"]}
    supplied = {fv["field_id"]: fv.get("value") for fv in field_values}
    errors: List[str] = []

    for field_id in supplied:
        if field_id not in fields:
            errors.append(f"Field '{field_id}' does not belong to content type '{content_type['slug']}'")

    for field in fields.values():
        if field["required"] and _is_blank(supplied.get(field["id"])):
            errors.append(f"Field '{field['display_name']}' is required")

    if errors:
        raise ValidationError(message="Validation failed", code="entry.validation_failed", meta={"errors": errors})
