"""generated names

Revision ID: 0001_generated_names
Revises: 
Create Date: 2026-10-17 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_generated_names"
down_revision = None
branch_labels = None
depends_on = None

_id_type = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "generated_names",
        sa.Column("id", _id_type, primary_key=True, autoincrement=True),
        # Avoid index=True here because we create explicit indexes below.
        sa.Column("created_on", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("resource_name", sa.String(length=255), nullable=False),
        sa.Column("resource_type_name", sa.String(length=255), nullable=True),
        sa.Column("user", sa.String(length=100), server_default="General", nullable=False),
        sa.Column("message", sa.String(length=2000), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.String(length=1000), nullable=True),
        sa.Column("session_id", sa.String(length=100), nullable=True),
        sa.Column("request_id", sa.String(length=100), nullable=True),
        sa.Column("created_by", sa.String(length=100), server_default="System", nullable=False),
        sa.Column("updated_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.text("false"), nullable=False),
    )
    op.create_index("ix_generated_names_created_on", "generated_names", ["created_on"])
    op.create_index("ix_generated_names_user", "generated_names", ["user"])
    op.create_index("ix_generated_names_resource_type_name", "generated_names", ["resource_type_name"])
    op.create_index("ix_generated_names_resource_name", "generated_names", ["resource_name"])
    op.create_index("ix_generated_names_is_deleted", "generated_names", ["is_deleted"])
    op.create_index("ix_generated_names_ip_address", "generated_names", ["ip_address"])

    op.create_table(
        "generated_name_components",
        sa.Column("id", _id_type, primary_key=True, autoincrement=True),
        sa.Column(
            "generated_name_id",
            _id_type,
            sa.ForeignKey("generated_names.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("component_name", sa.String(length=100), nullable=False),
        sa.Column("component_value", sa.String(length=200), nullable=False),
        sa.Column("sort_order", sa.Integer(), server_default=sa.text("0"), nullable=False),
    )
    op.create_index(
        "ix_generated_name_components_generated_name_id",
        "generated_name_components",
        ["generated_name_id"],
    )
    op.create_index(
        "ix_generated_name_components_name_value",
        "generated_name_components",
        ["component_name", "component_value"],
    )


def downgrade() -> None:
    op.drop_index("ix_generated_name_components_name_value", table_name="generated_name_components")
    op.drop_index("ix_generated_name_components_generated_name_id", table_name="generated_name_components")
    op.drop_table("generated_name_components")
    op.drop_index("ix_generated_names_ip_address", table_name="generated_names")
    op.drop_index("ix_generated_names_is_deleted", table_name="generated_names")
    op.drop_index("ix_generated_names_resource_name", table_name="generated_names")
    op.drop_index("ix_generated_names_resource_type_name", table_name="generated_names")
    op.drop_index("ix_generated_names_user", table_name="generated_names")
    op.drop_index("ix_generated_names_created_on", table_name="generated_names")
    op.drop_table("generated_names")
