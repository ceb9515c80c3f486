"""
SubscriptionService - Subscription lookup, tier changes and feature gating.

The subscription is the sole owner of a user's absolute quota numbers.
Users without a subscription row are treated as the free tier.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from formspace_core.db import DatabaseManager, db
from formspace_core.exceptions import (
    FeatureNotAvailableError,
    InvalidOverageModeError,
    SubscriptionNotFoundError,
)
from formspace_core.models import OverageMode, SubscriptionModel, Tier
from formspace_core.services import queries
from formspace_core.services.tiers import TierLimits, get_tier_limits, parse_tier

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@dataclass
class SubscriptionInfo:
    """Resolved subscription for a user, real or the free-tier default."""

    user_id: str
    tier: str
    status: str
    overage_mode: str
    max_spaces: int
    max_forms_per_space: int
    max_users_per_space: int
    max_submissions_per_month: int
    max_storage_mb: int
    retention_days: int
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    is_default: bool = False

    @classmethod
    def from_model(cls, sub: SubscriptionModel) -> "SubscriptionInfo":
        return cls(
            user_id=sub.user_id,
            tier=sub.tier,
            status=sub.status,
            overage_mode=sub.overage_mode,
            max_spaces=sub.max_spaces,
            max_forms_per_space=sub.max_forms_per_space,
            max_users_per_space=sub.max_users_per_space,
            max_submissions_per_month=sub.max_submissions_per_month,
            max_storage_mb=sub.max_storage_mb,
            retention_days=sub.retention_days,
            current_period_start=ensure_utc(sub.current_period_start),
            current_period_end=ensure_utc(sub.current_period_end),
        )

    @classmethod
    def free_default(cls, user_id: str) -> "SubscriptionInfo":
        limits = get_tier_limits(Tier.FREE.value)
        return cls(
            user_id=user_id,
            tier=Tier.FREE.value,
            status="active",
            overage_mode=OverageMode.PAUSE.value,
            max_spaces=limits.max_spaces,
            max_forms_per_space=limits.max_forms_per_space,
            max_users_per_space=limits.max_users_per_space,
            max_submissions_per_month=limits.max_submissions_per_month,
            max_storage_mb=limits.max_storage_mb,
            retention_days=limits.retention_days,
            is_default=True,
        )

    @property
    def is_auto_bill(self) -> bool:
        return self.overage_mode == OverageMode.AUTO_BILL.value


async def load_subscription(session: AsyncSession, user_id: str) -> SubscriptionInfo:
    """Resolve a user's subscription inside an existing session."""
    sub = await queries.get_subscription(session, user_id)
    if sub is None:
        return SubscriptionInfo.free_default(user_id)
    return SubscriptionInfo.from_model(sub)


def parse_overage_mode(mode: str) -> OverageMode:
    """Resolve an overage mode, raising InvalidOverageModeError for unknown names."""
    try:
        return OverageMode(mode)
    except ValueError:
        raise InvalidOverageModeError(str(mode)) from None


def _apply_tier_limits(sub: SubscriptionModel, limits: TierLimits) -> None:
    sub.max_spaces = limits.max_spaces
    sub.max_forms_per_space = limits.max_forms_per_space
    sub.max_users_per_space = limits.max_users_per_space
    sub.max_submissions_per_month = limits.max_submissions_per_month
    sub.max_storage_mb = limits.max_storage_mb
    sub.retention_days = limits.retention_days


class SubscriptionService:
    """
    Subscription management.

    update_user_subscription is the single entry point for tier changes
    (payment webhooks, admin tooling): it applies the tier's limits and
    resets the user's allocations to an even split of the new totals.
    """

    def __init__(self, database: Optional[DatabaseManager] = None):
        self._db = database or db

    async def get_user_subscription(self, user_id: str) -> SubscriptionInfo:
        async with self._db.session() as session:
            return await load_subscription(session, user_id)

    async def create_subscription(
        self,
        user_id: str,
        tier: str = Tier.FREE.value,
        overage_mode: str = OverageMode.PAUSE.value,
        current_period_start: Optional[datetime] = None,
        current_period_end: Optional[datetime] = None,
    ) -> SubscriptionInfo:
        """Create a subscription row. Returns the existing one if present."""
        tier_enum = parse_tier(tier)
        overage = parse_overage_mode(overage_mode)

        async with self._db.session() as session:
            existing = await queries.get_subscription(session, user_id)
            if existing is not None:
                return SubscriptionInfo.from_model(existing)

            sub = SubscriptionModel(
                user_id=user_id,
                tier=tier_enum.value,
                overage_mode=overage.value,
                current_period_start=current_period_start,
                current_period_end=current_period_end,
            )
            _apply_tier_limits(sub, get_tier_limits(tier_enum.value))
            session.add(sub)
            await session.flush()
            logger.info(f"Created {tier_enum.value} subscription for user {user_id}")
            return SubscriptionInfo.from_model(sub)

    async def update_user_subscription(
        self,
        user_id: str,
        new_tier: str,
        *,
        payment_provider: Optional[str] = None,
        payment_customer_id: Optional[str] = None,
        payment_subscription_id: Optional[str] = None,
        payment_price_id: Optional[str] = None,
        current_period_start: Optional[datetime] = None,
        current_period_end: Optional[datetime] = None,
    ) -> SubscriptionInfo:
        """
        Change a user's tier and apply its limits.

        Raises:
            InvalidTierError: new_tier is not a known tier
            SubscriptionNotFoundError: the user has no subscription row
        """
        tier = parse_tier(new_tier)
        limits = get_tier_limits(tier.value)

        async with self._db.session() as session:
            sub = await queries.get_subscription(session, user_id, for_update=True)
            if sub is None:
                raise SubscriptionNotFoundError(user_id)

            previous_tier = sub.tier
            sub.tier = tier.value
            _apply_tier_limits(sub, limits)
            if not limits.can_set_overage_mode:
                sub.overage_mode = OverageMode.PAUSE.value

            if payment_provider:
                sub.payment_provider = payment_provider
            if payment_customer_id:
                sub.payment_customer_id = payment_customer_id
            if payment_subscription_id:
                sub.payment_subscription_id = payment_subscription_id
            if payment_price_id:
                sub.payment_price_id = payment_price_id
            if current_period_start:
                sub.current_period_start = current_period_start
            if current_period_end:
                sub.current_period_end = current_period_end

            # New totals are redistributed evenly on next read
            await queries.delete_user_allocations(session, user_id)
            await session.flush()

            logger.info(
                f"Changed subscription for user {user_id}: {previous_tier} -> {tier.value}"
            )
            return SubscriptionInfo.from_model(sub)

    async def set_overage_mode(self, user_id: str, mode: str) -> SubscriptionInfo:
        """
        Switch between pause and auto_bill.

        Raises:
            InvalidOverageModeError: unknown mode
            SubscriptionNotFoundError: the user has no subscription row
            FeatureNotAvailableError: the tier cannot configure overage
        """
        overage = parse_overage_mode(mode)

        async with self._db.session() as session:
            sub = await queries.get_subscription(session, user_id, for_update=True)
            if sub is None:
                raise SubscriptionNotFoundError(user_id)
            if not get_tier_limits(sub.tier).can_set_overage_mode:
                raise FeatureNotAvailableError("overage billing", sub.tier)

            sub.overage_mode = overage.value
            await session.flush()
            logger.info(f"Set overage mode for user {user_id} to {overage.value}")
            return SubscriptionInfo.from_model(sub)

    async def has_feature(self, user_id: str, feature: str) -> bool:
        """Check whether the user's tier enables a TierLimits flag."""
        sub = await self.get_user_subscription(user_id)
        limits = get_tier_limits(sub.tier)
        if not hasattr(limits, feature):
            raise ValueError(f"Unknown feature: {feature}")
        return bool(getattr(limits, feature))

    async def require_feature(self, user_id: str, feature: str, feature_name: str) -> None:
        """Raise FeatureNotAvailableError unless the user's tier has the feature."""
        if not await self.has_feature(user_id, feature):
            sub = await self.get_user_subscription(user_id)
            raise FeatureNotAvailableError(feature_name, sub.tier)


# Singleton instance
subscription_service = SubscriptionService()
