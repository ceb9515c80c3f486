"""
SQLAlchemy models for subscriptions, resource allocation and usage tracking.

Tables:
- subscriptions: Per-user subscription state and absolute quota ceilings
- space_resource_allocations: Per-user, per-space percentage shares of the quota
- space_resource_usage: Per-space running usage counters
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    String,
    DateTime,
    Integer,
    Boolean,
    ForeignKey,
    Index,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from formspace_core.models.base import Base, Tier, OverageMode


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SubscriptionModel(Base):
    """
    Per-user subscription state.

    Holds the absolute ceilings (storage, submissions/month) that allocations
    distribute across spaces as percentages. Limit columns are denormalized
    from the tier table so a user can carry custom limits; -1 means unlimited.
    """
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), unique=True, nullable=False)

    tier = Column(String(20), nullable=False, default=Tier.FREE.value)
    status = Column(String(20), nullable=False, default="active")  # active, canceled, past_due
    overage_mode = Column(String(20), nullable=False, default=OverageMode.PAUSE.value)

    # Limits
    max_spaces = Column(Integer, nullable=False, default=1)
    max_forms_per_space = Column(Integer, nullable=False, default=3)
    max_users_per_space = Column(Integer, nullable=False, default=5)
    max_submissions_per_month = Column(Integer, nullable=False, default=100)
    max_storage_mb = Column(Integer, nullable=False, default=100)
    retention_days = Column(Integer, nullable=False, default=30)

    # Payment provider references
    payment_provider = Column(String(20))  # stripe, polar
    payment_customer_id = Column(String(100))
    payment_subscription_id = Column(String(100))
    payment_price_id = Column(String(100))

    # Billing period (free tier has none and never rolls over)
    current_period_start = Column(DateTime(timezone=True))
    current_period_end = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False)

    __table_args__ = (
        Index("idx_subscriptions_period_end", "current_period_end"),
    )

    def __repr__(self):
        return f"<Subscription(user='{self.user_id}', tier='{self.tier}')>"


class SpaceResourceAllocationModel(Base):
    """
    A user's percentage share of their subscription quota assigned to one space.

    For a fixed user, storage_percentage and submission_percentage each sum
    to 100 across all of that user's rows. The invariant is restored by an
    auto-split reset whenever a space removal breaks it.
    """
    __tablename__ = "space_resource_allocations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False)
    space_id = Column(String(36), ForeignKey("spaces.id", ondelete="CASCADE"), nullable=False)

    storage_percentage = Column(Integer, nullable=False, default=0)
    submission_percentage = Column(Integer, nullable=False, default=0)
    storage_is_locked = Column(Boolean, nullable=False, default=False)
    submission_is_locked = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False)

    space = relationship("SpaceModel", back_populates="allocations")

    __table_args__ = (
        UniqueConstraint("user_id", "space_id", name="uq_allocation_user_space"),
        CheckConstraint(
            "storage_percentage >= 0 AND storage_percentage <= 100",
            name="ck_allocation_storage_pct_range",
        ),
        CheckConstraint(
            "submission_percentage >= 0 AND submission_percentage <= 100",
            name="ck_allocation_submission_pct_range",
        ),
        Index("idx_allocations_user", "user_id"),
    )

    def __repr__(self):
        return (
            f"<SpaceResourceAllocation(user='{self.user_id}', space='{self.space_id}', "
            f"storage={self.storage_percentage}%, submissions={self.submission_percentage}%)>"
        )


class SpaceResourceUsageModel(Base):
    """
    Running usage counters for one space.

    submissions_this_month is zeroed on billing-cycle rollover; storage and
    total_submissions are cumulative. Every counter is non-negative.
    """
    __tablename__ = "space_resource_usage"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    space_id = Column(
        String(36), ForeignKey("spaces.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    used_storage_mb = Column(Integer, nullable=False, default=0)
    submissions_this_month = Column(Integer, nullable=False, default=0)
    total_submissions = Column(Integer, nullable=False, default=0)
    active_members = Column(Integer, nullable=False, default=0)
    active_forms = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False)

    space = relationship("SpaceModel", back_populates="usage")

    __table_args__ = (
        CheckConstraint("used_storage_mb >= 0", name="ck_usage_storage_non_negative"),
        CheckConstraint("submissions_this_month >= 0", name="ck_usage_month_non_negative"),
        CheckConstraint("total_submissions >= 0", name="ck_usage_total_non_negative"),
        CheckConstraint("active_members >= 0", name="ck_usage_members_non_negative"),
        CheckConstraint("active_forms >= 0", name="ck_usage_forms_non_negative"),
    )

    def __repr__(self):
        return (
            f"<SpaceResourceUsage(space='{self.space_id}', storage={self.used_storage_mb}MB, "
            f"month={self.submissions_this_month})>"
        )


# Backwards-compatible aliases
Subscription = SubscriptionModel
SpaceResourceAllocation = SpaceResourceAllocationModel
SpaceResourceUsage = SpaceResourceUsageModel

__all__ = [
    "SubscriptionModel",
    "SpaceResourceAllocationModel",
    "SpaceResourceUsageModel",
    # Aliases
    "Subscription",
    "SpaceResourceAllocation",
    "SpaceResourceUsage",
]
