from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from tancms.models import ContentStatus, FieldType


class FieldIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    display_name: Optional[str] = Field(None, max_length=200)
    field_type: FieldType
    required: bool = False
    unique: bool = False
    default_value: Optional[str] = None
    options: Optional[Dict[str, Any]] = None
    related_type: Optional[str] = Field(None, description="Target content type for RELATION fields (not checked)")
    order: Optional[int] = Field(None, ge=0, description="Defaults to the next free position")


class FieldPatchIn(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    display_name: Optional[str] = Field(None, min_length=1, max_length=200)
    field_type: Optional[FieldType] = None
    required: Optional[bool] = None
    unique: Optional[bool] = None
    default_value: Optional[str] = None
    options: Optional[Dict[str, Any]] = Field(None, description="Replaces the stored options entirely")
    related_type: Optional[str] = None
    order: Optional[int] = Field(None, ge=0)


class FieldOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    content_type_id: str
    name: str
    display_name: str
    field_type: FieldType
    required: bool
    unique: bool
    default_value: Optional[str] = None
    options: Optional[Dict[str, Any]] = None
    related_type: Optional[str] = None
    order: int


class ContentTypeCreateIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    display_name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    fields: List[FieldIn] = Field(default_factory=list)


class ContentTypePatchIn(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    display_name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None


class ContentTypeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    display_name: str
    slug: str
    description: Optional[str] = None
    fields: List[FieldOut]
    entry_count: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class ContentTypeDeletedOut(BaseModel):
    id: str
    deleted_entries: int


class FieldValueIn(BaseModel):
    field_id: str
    value: Any = None


class EntryCreateIn(BaseModel):
    slug: Optional[str] = Field(None, max_length=200)
    field_values: List[FieldValueIn] = Field(default_factory=list)
    status: ContentStatus = ContentStatus.DRAFT
    scheduled_at: Optional[datetime] = None


class EntryPatchIn(BaseModel):
    slug: Optional[str] = Field(None, max_length=200)
    field_values: Optional[List[FieldValueIn]] = Field(None, description="Replaces every stored value of the entry")


class FieldValueOut(BaseModel):
    id: str
    field_id: str
    value: str
    field: FieldOut


class EntryOut(BaseModel):
    id: str
    content_type_id: str
    slug: Optional[str] = None
    status: ContentStatus
    scheduled_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    field_values: List[FieldValueOut]


class EntryDetailOut(EntryOut):
    content_type: ContentTypeOut


class EntryListOut(BaseModel):
    entries: List[EntryOut]
    total: int
    pages: int
    current_page: int
    page_size: int


class TransitionIn(BaseModel):
    to_status: ContentStatus
    scheduled_at: Optional[datetime] = None


class TransitionOut(BaseModel):
    entry_id: str
    from_status: ContentStatus
    to_status: ContentStatus


class AllowedTransitionsOut(BaseModel):
    entry_id: str
    from_status: ContentStatus
    allowed: List[ContentStatus]


class BulkActionDefOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    label: str
    requires_confirmation: bool
    confirmation_message: Optional[str] = None


class BulkActionIn(BaseModel):
    action: str
    entry_ids: List[str] = Field(..., min_length=1)
    scheduled_at: Optional[datetime] = None
    confirm: bool = False


class BulkActionOut(BaseModel):
    action: str
    processed: List[str]
