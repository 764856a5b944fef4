"""Relational schema for the content modeling layer."""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()


content_types = Table(
    "content_types",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(200), nullable=False),
    Column("display_name", String(200), nullable=False),
    Column("slug", String(220), nullable=False),
    Column("description", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("slug", name="uq_content_types_slug"),
)

content_fields = Table(
    "content_fields",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "content_type_id",
        String(36),
        ForeignKey("content_types.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("name", String(200), nullable=False),
    Column("display_name", String(200), nullable=False),
    Column("field_type", String(32), nullable=False),
    Column("is_required", Boolean, nullable=False, default=False),
    Column("is_unique", Boolean, nullable=False, default=False),
    Column("default_value", Text, nullable=True),
    # JSON text, always replaced wholesale on update
    Column("options", Text, nullable=True),
    Column("related_type", String(220), nullable=True),
    Column("sort_order", Integer, nullable=False, default=0),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("content_type_id", "name", name="uq_content_fields_type_name"),
    Index("ix_content_fields_content_type_id", "content_type_id"),
)

content_entries = Table(
    "content_entries",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "content_type_id",
        String(36),
        ForeignKey("content_types.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("slug", String(220), nullable=True),
    Column("status", String(16), nullable=False, default="DRAFT"),
    Column("scheduled_at", DateTime(timezone=True), nullable=True),
    Column("published_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("content_type_id", "slug", name="uq_content_entries_type_slug"),
    Index("ix_content_entries_content_type_id", "content_type_id"),
    Index("ix_content_entries_status", "status"),
    Index("ix_content_entries_scheduled_at", "scheduled_at"),
)

# No unique (entry_id, field_id): replace-all updates keep one row per pair.
content_field_values = Table(
    "content_field_values",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "entry_id",
        String(36),
        ForeignKey("content_entries.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "field_id",
        String(36),
        ForeignKey("content_fields.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("value", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Index("ix_content_field_values_entry_id", "entry_id"),
    Index("ix_content_field_values_field_id", "field_id"),
)
