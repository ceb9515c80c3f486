"""Initial schema: spaces, memberships, subscriptions, allocations, usage

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create quota engine tables, constraints and indexes."""
    op.create_table(
        "spaces",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_by", sa.String(36), nullable=False),
        sa.Column("is_paused", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("idx_spaces_created_by", "spaces", ["created_by"])

    op.create_table(
        "space_members",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "space_id",
            sa.String(36),
            sa.ForeignKey("spaces.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("role", sa.String(20), server_default="member", nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("space_id", "user_id", name="uq_space_members_space_user"),
    )
    op.create_index(
        "idx_space_members_user_created", "space_members", ["user_id", "created_at"]
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), unique=True, nullable=False),
        # Plan
        sa.Column("tier", sa.String(20), server_default="free", nullable=False),
        sa.Column("status", sa.String(20), server_default="active", nullable=False),
        sa.Column("overage_mode", sa.String(20), server_default="pause", nullable=False),
        # Limits (-1 = unlimited)
        sa.Column("max_spaces", sa.Integer, server_default="1", nullable=False),
        sa.Column("max_forms_per_space", sa.Integer, server_default="3", nullable=False),
        sa.Column("max_users_per_space", sa.Integer, server_default="5", nullable=False),
        sa.Column("max_submissions_per_month", sa.Integer, server_default="100", nullable=False),
        sa.Column("max_storage_mb", sa.Integer, server_default="100", nullable=False),
        sa.Column("retention_days", sa.Integer, server_default="30", nullable=False),
        # Payment provider
        sa.Column("payment_provider", sa.String(20)),
        sa.Column("payment_customer_id", sa.String(100)),
        sa.Column("payment_subscription_id", sa.String(100)),
        sa.Column("payment_price_id", sa.String(100)),
        # Billing period
        sa.Column("current_period_start", sa.DateTime(timezone=True)),
        sa.Column("current_period_end", sa.DateTime(timezone=True)),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("idx_subscriptions_period_end", "subscriptions", ["current_period_end"])

    op.create_table(
        "space_resource_allocations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column(
            "space_id",
            sa.String(36),
            sa.ForeignKey("spaces.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("storage_percentage", sa.Integer, server_default="0", nullable=False),
        sa.Column("submission_percentage", sa.Integer, server_default="0", nullable=False),
        sa.Column("storage_is_locked", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("submission_is_locked", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("user_id", "space_id", name="uq_allocation_user_space"),
        sa.CheckConstraint(
            "storage_percentage >= 0 AND storage_percentage <= 100",
            name="ck_allocation_storage_pct_range",
        ),
        sa.CheckConstraint(
            "submission_percentage >= 0 AND submission_percentage <= 100",
            name="ck_allocation_submission_pct_range",
        ),
    )
    op.create_index("idx_allocations_user", "space_resource_allocations", ["user_id"])

    op.create_table(
        "space_resource_usage",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "space_id",
            sa.String(36),
            sa.ForeignKey("spaces.id", ondelete="CASCADE"),
            unique=True,
            nullable=False,
        ),
        sa.Column("used_storage_mb", sa.Integer, server_default="0", nullable=False),
        sa.Column("submissions_this_month", sa.Integer, server_default="0", nullable=False),
        sa.Column("total_submissions", sa.Integer, server_default="0", nullable=False),
        sa.Column("active_members", sa.Integer, server_default="0", nullable=False),
        sa.Column("active_forms", sa.Integer, server_default="0", nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint("used_storage_mb >= 0", name="ck_usage_storage_non_negative"),
        sa.CheckConstraint("submissions_this_month >= 0", name="ck_usage_month_non_negative"),
        sa.CheckConstraint("total_submissions >= 0", name="ck_usage_total_non_negative"),
        sa.CheckConstraint("active_members >= 0", name="ck_usage_members_non_negative"),
        sa.CheckConstraint("active_forms >= 0", name="ck_usage_forms_non_negative"),
    )


def downgrade() -> None:
    """Drop quota engine tables."""
    op.drop_table("space_resource_usage")
    op.drop_index("idx_allocations_user", table_name="space_resource_allocations")
    op.drop_table("space_resource_allocations")
    op.drop_index("idx_subscriptions_period_end", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_index("idx_space_members_user_created", table_name="space_members")
    op.drop_table("space_members")
    op.drop_index("idx_spaces_created_by", table_name="spaces")
    op.drop_table("spaces")
