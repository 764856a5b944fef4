"""Content modeling tables

- content_types (unique slug)
- content_fields (unique name per type, cascade from type)
- content_entries (unique slug per type, status workflow, cascade from type)
- content_field_values (text values, cascade from entry and field)
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261019_0001_content_modeling"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "content_types",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("display_name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(220), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("slug", name="uq_content_types_slug"),
    )

    op.create_table(
        "content_fields",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "content_type_id",
            sa.String(36),
            sa.ForeignKey("content_types.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("display_name", sa.String(200), nullable=False),
        sa.Column("field_type", sa.String(32), nullable=False),
        sa.Column("is_required", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_unique", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("default_value", sa.Text, nullable=True),
        sa.Column("options", sa.Text, nullable=True),
        sa.Column("related_type", sa.String(220), nullable=True),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("content_type_id", "name", name="uq_content_fields_type_name"),
    )
    op.create_index("ix_content_fields_content_type_id", "content_fields", ["content_type_id"])

    op.create_table(
        "content_entries",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "content_type_id",
            sa.String(36),
            sa.ForeignKey("content_types.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("slug", sa.String(220), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="DRAFT"),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("content_type_id", "slug", name="uq_content_entries_type_slug"),
    )
    op.create_index("ix_content_entries_content_type_id", "content_entries", ["content_type_id"])
    op.create_index("ix_content_entries_status", "content_entries", ["status"])
    op.create_index("ix_content_entries_scheduled_at", "content_entries", ["scheduled_at"])

    op.create_table(
        "content_field_values",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "entry_id",
            sa.String(36),
            sa.ForeignKey("content_entries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "field_id",
            sa.String(36),
            sa.ForeignKey("content_fields.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("value", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_content_field_values_entry_id", "content_field_values", ["entry_id"])
    op.create_index("ix_content_field_values_field_id", "content_field_values", ["field_id"])


def downgrade() -> None:
    op.drop_table("content_field_values")
    op.drop_table("content_entries")
    op.drop_table("content_fields")
    op.drop_table("content_types")
