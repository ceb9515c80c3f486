"""
QuotaService - The single decision point for writes that consume quota.

Per-request flow:
    lazy rollover -> allocation lookup -> usage lookup -> compare
    -> allow | allow with overage | deny

Allow/deny outcomes are returned as LimitCheckResult, never raised. Database
errors propagate to the caller untouched.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Union

from formspace_core.config import QuotaSettings, get_quota_settings
from formspace_core.db import DatabaseManager, db
from formspace_core.services import queries
from formspace_core.services.allocation_service import AllocationService
from formspace_core.services.subscription_service import load_subscription
from formspace_core.services.tiers import UNLIMITED
from formspace_core.services.usage_service import UsageService

logger = logging.getLogger(__name__)

NO_ACCESS_REASON = "You do not have access to this space"


@dataclass
class LimitCheckResult:
    """Result of a quota check."""

    allowed: bool
    reason: Optional[str] = None
    current_usage: Optional[Union[int, float]] = None
    limit: Optional[int] = None
    overage: bool = False  # allowed past the limit; billed at period end


class QuotaService:
    """
    Quota gate.

    Each check runs in one transaction: the lazy rollover, allocation lookup
    (auto-split created if needed) and usage read see a consistent state.
    """

    def __init__(
        self,
        database: Optional[DatabaseManager] = None,
        settings: Optional[QuotaSettings] = None,
        time_provider: Optional[Callable[[], datetime]] = None,
        allocations: Optional[AllocationService] = None,
        usage: Optional[UsageService] = None,
    ):
        self._db = database or db
        settings = settings or get_quota_settings()
        self._allocations = allocations or AllocationService(self._db, settings)
        self._usage = usage or UsageService(
            self._db, settings, time_provider=time_provider, allocations=self._allocations
        )

    async def can_accept_submission(self, user_id: str, space_id: str) -> LimitCheckResult:
        """
        Check if a space can accept one more submission this billing period.

        Args:
            user_id: User whose subscription funds the space
            space_id: Space receiving the submission

        Returns:
            LimitCheckResult; denied when the user has no access or the space's
            allocation is used up under pause overage mode
        """
        async with self._db.session() as session:
            await self._usage.roll_over_if_due(session, user_id)

            sub = await load_subscription(session, user_id)
            summary = await self._allocations.load_summary(session, user_id, subscription=sub)
            allocation = summary.get(space_id)
            if allocation is None:
                logger.warning(f"Submission check denied: user {user_id} has no access to {space_id}")
                return LimitCheckResult(allowed=False, reason=NO_ACCESS_REASON)

            usage = await queries.get_space_usage(session, space_id)

        if usage is None:
            # No counters yet means nothing has been used
            return LimitCheckResult(allowed=True)

        limit = allocation.allocated_submissions_per_month
        used = usage.submissions_this_month

        if used < limit:
            return LimitCheckResult(allowed=True, current_usage=used, limit=limit)

        if sub.is_auto_bill:
            logger.debug(f"Space {space_id} over submission limit ({used}/{limit}); auto-billing")
            return LimitCheckResult(
                allowed=True, current_usage=used, limit=limit, overage=True
            )

        logger.debug(f"Space {space_id} over submission limit ({used}/{limit}); paused")
        return LimitCheckResult(
            allowed=False,
            reason=(
                f"This space has reached its monthly submission limit ({limit:,}). "
                f"Reallocate resources or upgrade your plan."
            ),
            current_usage=used,
            limit=limit,
        )

    async def can_upload_file(
        self, user_id: str, space_id: str, file_size_mb: Union[int, float]
    ) -> LimitCheckResult:
        """
        Check if a space can store file_size_mb more megabytes.

        Storage is cumulative, so the rollover only matters for consistency with
        the submission check; a space with no counters is treated as empty.
        """
        async with self._db.session() as session:
            await self._usage.roll_over_if_due(session, user_id)

            sub = await load_subscription(session, user_id)
            summary = await self._allocations.load_summary(session, user_id, subscription=sub)
            allocation = summary.get(space_id)
            if allocation is None:
                logger.warning(f"Upload check denied: user {user_id} has no access to {space_id}")
                return LimitCheckResult(allowed=False, reason=NO_ACCESS_REASON)

            usage = await queries.get_space_usage(session, space_id)

        current = usage.used_storage_mb if usage else 0
        limit = allocation.allocated_storage_mb

        if current + file_size_mb <= limit:
            return LimitCheckResult(allowed=True, current_usage=current, limit=limit)

        if sub.is_auto_bill:
            logger.debug(f"Space {space_id} over storage limit ({current}+{file_size_mb}/{limit}MB); auto-billing")
            return LimitCheckResult(
                allowed=True, current_usage=current, limit=limit, overage=True
            )

        return LimitCheckResult(
            allowed=False,
            reason=(
                f"This space has reached its storage limit ({limit}MB). "
                f"Reallocate resources or upgrade your plan."
            ),
            current_usage=current,
            limit=limit,
        )

    async def can_create_space(self, user_id: str) -> LimitCheckResult:
        """Check the user's space count against max_spaces."""
        async with self._db.session() as session:
            sub = await load_subscription(session, user_id)
            current = len(await queries.list_user_spaces(session, user_id))

        limit = sub.max_spaces
        if limit != UNLIMITED and current >= limit:
            return LimitCheckResult(
                allowed=False,
                reason=(
                    f"You have reached your space limit ({limit}). "
                    f"Upgrade your plan to create more spaces."
                ),
                current_usage=current,
                limit=limit,
            )
        return LimitCheckResult(allowed=True, current_usage=current, limit=limit)

    async def can_create_form(self, user_id: str, space_id: str) -> LimitCheckResult:
        """Check a space's active form count against max_forms_per_space."""
        async with self._db.session() as session:
            sub = await load_subscription(session, user_id)
            usage = await queries.get_space_usage(session, space_id)

        current = usage.active_forms if usage else 0
        limit = sub.max_forms_per_space
        if limit == UNLIMITED:
            return LimitCheckResult(allowed=True, current_usage=current, limit=UNLIMITED)
        if current >= limit:
            return LimitCheckResult(
                allowed=False,
                reason=(
                    f"This space has reached its form limit ({limit}). "
                    f"Upgrade your plan to create more forms."
                ),
                current_usage=current,
                limit=limit,
            )
        return LimitCheckResult(allowed=True, current_usage=current, limit=limit)

    async def can_add_user(self, user_id: str, space_id: str) -> LimitCheckResult:
        """Check a space's member count against max_users_per_space."""
        async with self._db.session() as session:
            sub = await load_subscription(session, user_id)
            current = await queries.count_space_members(session, space_id)

        limit = sub.max_users_per_space
        if limit == UNLIMITED:
            return LimitCheckResult(allowed=True, current_usage=current, limit=UNLIMITED)
        if current >= limit:
            return LimitCheckResult(
                allowed=False,
                reason=(
                    f"This space has reached its user limit ({limit}). "
                    f"Upgrade your plan to add more users."
                ),
                current_usage=current,
                limit=limit,
            )
        return LimitCheckResult(allowed=True, current_usage=current, limit=limit)


# Singleton instance
quota_service = QuotaService()
