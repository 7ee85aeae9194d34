"""Initial migration: organizations, tenants, and geocodings tables.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(100), unique=True, nullable=False),
        sa.Column("geocoding_quota", sa.Integer, nullable=False, server_default="0"),
        sa.Column("geocoding_block_price", sa.Integer, nullable=False, server_default="0"),
        sa.Column("soft_geocoding_limit", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("geocoding_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "tenants",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("username", sa.String(100), unique=True, nullable=False),
        sa.Column("geocoding_quota", sa.Integer, nullable=False, server_default="0"),
        sa.Column("geocoding_block_price", sa.Integer, nullable=False, server_default="0"),
        sa.Column("soft_geocoding_limit", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("geocoding_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "organization_id",
            sa.Uuid,
            sa.ForeignKey("organizations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_tenants_username", "tenants", ["username"], unique=True)
    op.create_index("ix_tenants_organization_id", "tenants", ["organization_id"])

    op.create_table(
        "geocodings",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("tenant_id", sa.Uuid, sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("table_name", sa.String(63), nullable=True),
        sa.Column("formatter", sa.Text, nullable=False),
        sa.Column("kind", sa.String(20), nullable=False, server_default="high-resolution"),
        sa.Column("geometry_type", sa.String(20), nullable=True),
        sa.Column("state", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("processable_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("processed_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("cache_hits", sa.Integer, nullable=False, server_default="0"),
        sa.Column("real_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("used_credits", sa.Integer, nullable=False, server_default="0"),
        sa.Column("run_timeout", sa.Float, nullable=False),
        sa.Column("remote_id", sa.String(255), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("used_credits >= 0", name="ck_geocodings_used_credits_non_negative"),
        sa.CheckConstraint(
            "processed_rows >= 0 AND cache_hits >= 0 AND real_rows >= 0",
            name="ck_geocodings_counts",
        ),
    )
    op.create_index("ix_geocodings_tenant_id", "geocodings", ["tenant_id"])
    op.create_index("ix_geocodings_state", "geocodings", ["state"])
    op.create_index("ix_geocodings_created_at", "geocodings", ["created_at"])


def downgrade() -> None:
    op.drop_table("geocodings")
    op.drop_table("tenants")
    op.drop_table("organizations")
