"""Display formatting of stored field values for preview and public pages."""

from __future__ import annotations

import html
import json
import re
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional

from tancms.codec import decode_value

_LABELS: Dict[str, str] = {
    "TEXT": "Text",
    "TEXTAREA": "Long Text",
    "RICH_TEXT": "Rich Text",
    "WYSIWYG": "Rich Text",
    "EMAIL": "Email",
    "URL": "URL",
    "PHONE": "Phone",
    "DATE": "Date",
    "DATETIME": "Date & Time",
    "NUMBER": "Number",
    "DECIMAL": "Decimal",
    "BOOLEAN": "Yes/No",
    "COLOR": "Color",
    "JSON": "JSON",
    "SLUG": "URL Slug",
    "PASSWORD": "Password",
    "RELATION": "Relation",
    "MEDIA": "Media",
}

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True)
class FormattedValue:
    display_value: str
    is_html: bool = False
    is_link: bool = False
    link_url: Optional[str] = None


def get_field_type_label(field_type: str) -> str:
    key = str(getattr(field_type, "value", field_type))
    return _LABELS.get(key, key)


def _format_date(value: str, with_time: bool) -> FormattedValue:
    typed = decode_value(value, "DATETIME" if with_time else "DATE")
    if isinstance(typed, datetime):
        return FormattedValue(f"{typed:%b} {typed.day}, {typed.year} {typed:%H:%M}")
    if isinstance(typed, date):
        return FormattedValue(f"{typed:%b} {typed.day}, {typed.year}")
    return FormattedValue(value)


def _format_number(value: str) -> FormattedValue:
    typed = decode_value(value, "NUMBER")
    if isinstance(typed, (int, float)):
        return FormattedValue(f"{typed:,}")
    return FormattedValue(value)


def format_field_value(field: Mapping[str, Any], value: Optional[str]) -> FormattedValue:
    if value is None or not value.strip():
        return FormattedValue("(empty)")

    ft = str(field.get("field_type") or "TEXT").upper()

    if ft in ("RICH_TEXT", "WYSIWYG"):
        return FormattedValue(value, is_html=True)

    if ft == "EMAIL":
        return FormattedValue(value, is_link=True, link_url=f"mailto:{value}")

    if ft == "URL":
        url = value if value.startswith("http") else f"https://{value}"
        return FormattedValue(value, is_link=True, link_url=url)

    if ft == "PHONE":
        return FormattedValue(value, is_link=True, link_url=f"tel:{_NON_DIGITS.sub('', value)}")

    if ft in ("DATE", "DATETIME"):
        return _format_date(value, with_time=ft == "DATETIME")

    if ft == "BOOLEAN":
        return FormattedValue("Yes" if value.strip().lower() == "true" else "No")

    if ft in ("NUMBER", "DECIMAL"):
        return _format_number(value)

    if ft == "COLOR":
        color = html.escape(value)
        swatch = (
            '<div class="flex items-center gap-2">'
            f'<div class="w-4 h-4 rounded border" style="background-color: {color}"></div>'
            f"<span>{color}</span>"
            "</div>"
        )
        return FormattedValue(swatch, is_html=True)

    if ft == "JSON":
        try:
            parsed = json.loads(value)
        except ValueError:
            return FormattedValue(value)
        pretty = html.escape(json.dumps(parsed, indent=2))
        return FormattedValue(f'<pre class="bg-gray-100 p-2 rounded text-sm overflow-auto">{pretty}</pre>', is_html=True)

    if ft == "SLUG":
        return FormattedValue(f"/{value}")

    if ft == "PASSWORD":
        return FormattedValue("********")

    return FormattedValue(html.escape(value).replace("\n", "<br>"), is_html=True)


def render_entry(entry: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Preview/public payload for an entry loaded with `repo.get_entry`:
    typed values keyed by field name plus one display row per schema field.
    """
    content_type = entry["content_type"]
    by_field = {fv["field_id"]: fv["value"] for fv in entry.get("field_values", [])}

    data: Dict[str, Any] = {}
    display = []
    for field in content_type["fields"]:
        raw = by_field.get(field["id"])
        data[field["name"]] = decode_value(raw, field["field_type"])
        row = asdict(format_field_value(field, raw))
        row.update(
            name=field["name"],
            label=field["display_name"],
            type_label=get_field_type_label(field["field_type"]),
        )
        display.append(row)

    return {
        "id": entry["id"],
        "slug": entry.get("slug"),
        "status": entry["status"],
        "published_at": entry.get("published_at"),
        "content_type": {
            "id": content_type["id"],
            "slug": content_type["slug"],
            "display_name": content_type["display_name"],
        },
        "data": data,
        "display": display,
    }
