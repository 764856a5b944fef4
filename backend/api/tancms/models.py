from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FieldType(str, Enum):
    TEXT = "TEXT"
    TEXTAREA = "TEXTAREA"
    RICH_TEXT = "RICH_TEXT"
    WYSIWYG = "WYSIWYG"
    NUMBER = "NUMBER"
    DECIMAL = "DECIMAL"
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"
    DATETIME = "DATETIME"
    EMAIL = "EMAIL"
    URL = "URL"
    PHONE = "PHONE"
    COLOR = "COLOR"
    JSON = "JSON"
    SLUG = "SLUG"
    PASSWORD = "PASSWORD"
    RELATION = "RELATION"
    MEDIA = "MEDIA"


class ContentStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    SCHEDULED = "SCHEDULED"
    ARCHIVED = "ARCHIVED"


@dataclass(frozen=True)
class BulkAction:
    id: str
    label: str
    requires_confirmation: bool = False
    confirmation_message: Optional[str] = None
