"""Initial schema for the tracker state store.

Creates the ``tracked_objects`` table with its canonical-key unique
constraint, the status check constraint, and lookup indexes on schema,
name, and type.

Revision ID: 001
Revises: None
Create Date: 2026-10-01 00:00:00.000000+00:00

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "tracked_objects",
        sa.Column("object_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("schema_name", sa.Text(), nullable=False),
        sa.Column("object_name", sa.Text(), nullable=False),
        sa.Column("object_type", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="VALID"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "last_change_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("last_operation", sa.String(128), nullable=True),
        sa.Column("native_handle", sa.String(64), nullable=True),
        sa.UniqueConstraint(
            "schema_name",
            "object_name",
            "object_type",
            name="uq_tracked_objects_key",
        ),
        sa.CheckConstraint(
            "status IN ('VALID','INVALID')",
            name="ck_tracked_objects_status",
        ),
    )
    op.create_index("ix_tracked_objects_schema_name", "tracked_objects", ["schema_name"])
    op.create_index("ix_tracked_objects_object_name", "tracked_objects", ["object_name"])
    op.create_index("ix_tracked_objects_object_type", "tracked_objects", ["object_type"])


def downgrade() -> None:
    op.drop_index("ix_tracked_objects_object_type", table_name="tracked_objects")
    op.drop_index("ix_tracked_objects_object_name", table_name="tracked_objects")
    op.drop_index("ix_tracked_objects_schema_name", table_name="tracked_objects")
    op.drop_table("tracked_objects")
