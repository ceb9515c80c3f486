"""
UsageService - Per-space usage counters and billing-cycle rollover.

The service is a passive ledger: route handlers that accept submissions or
uploads call adjust_usage() themselves; nothing here intercepts writes.

Key Features:
- Lazy rollover: submissions_this_month is zeroed on the first read after the
  subscription's current_period_end, with no background scheduler
- Atomic counter updates with row-level locking (SELECT ... FOR UPDATE)
- Counters never go negative (clamped here, backed by CHECK constraints)
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from formspace_core.config import QuotaSettings, get_quota_settings
from formspace_core.db import DatabaseManager, db
from formspace_core.models import SpaceMemberModel, SpaceResourceUsageModel
from formspace_core.services import queries
from formspace_core.services.allocation_service import (
    AllocationService,
    AllocationSummary,
)
from formspace_core.services.subscription_service import (
    ensure_utc,
    load_subscription,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass
class SpaceUsage:
    """Snapshot of one space's counters."""

    space_id: str
    used_storage_mb: int = 0
    submissions_this_month: int = 0
    total_submissions: int = 0
    active_members: int = 0
    active_forms: int = 0

    @classmethod
    def from_model(cls, usage: SpaceResourceUsageModel) -> "SpaceUsage":
        return cls(
            space_id=usage.space_id,
            used_storage_mb=usage.used_storage_mb,
            submissions_this_month=usage.submissions_this_month,
            total_submissions=usage.total_submissions,
            active_members=usage.active_members,
            active_forms=usage.active_forms,
        )


@dataclass
class UserUsage:
    """A user's usage summed across all their spaces."""

    current_spaces: int
    max_spaces: int
    submissions_this_month: int
    max_submissions_per_month: int
    used_storage_mb: int
    max_storage_mb: int
    tier: str
    overage_mode: str


@dataclass
class SpaceUsageWithLimits:
    """A space's actual usage next to its allocated limits."""

    space_id: str
    space_name: str

    used_storage_mb: int
    submissions_this_month: int
    total_submissions: int
    active_members: int
    active_forms: int

    allocated_storage_mb: int
    allocated_submissions_per_month: int

    storage_percentage: int
    submission_percentage: int

    storage_usage_percent: float
    submission_usage_percent: float


def _usage_percent(used: int, allocated: int) -> float:
    if allocated <= 0:
        return 0.0
    return min(used / allocated * 100, 100.0)


def _whole_mb(delta: Union[int, float]) -> int:
    """Round additions up and removals down so the ledger never under-counts."""
    if delta >= 0:
        return math.ceil(delta)
    return -math.floor(-delta)


class UsageService:
    """
    Usage tracker.

    roll_over_if_due() takes the caller's session so the quota gate can run
    the lazy reset inside the same transaction as its decision.
    """

    def __init__(
        self,
        database: Optional[DatabaseManager] = None,
        settings: Optional[QuotaSettings] = None,
        time_provider: Optional[Callable[[], datetime]] = None,
        allocations: Optional[AllocationService] = None,
    ):
        self._db = database or db
        self._settings = settings or get_quota_settings()
        self._time_provider = time_provider or utc_now
        self._allocations = allocations or AllocationService(self._db, self._settings)

    def _now(self) -> datetime:
        return ensure_utc(self._time_provider())

    # ------------------------------------------------------------------
    # Billing-cycle rollover
    # ------------------------------------------------------------------

    async def should_reset_billing_period(self, user_id: str) -> bool:
        """True iff the user's subscription has a current_period_end in the past."""
        async with self._db.session() as session:
            sub = await load_subscription(session, user_id)
        if sub.current_period_end is None:
            # Free tier or period not started yet
            return False
        return self._now() > sub.current_period_end

    async def reset_monthly_usage(self, user_id: str) -> int:
        """
        Zero submissions_this_month for every space the user belongs to.

        Storage and total_submissions are cumulative and left alone.
        Returns the number of counter rows reset.
        """
        async with self._db.session() as session:
            return await self._reset_counters(session, user_id)

    async def _reset_counters(self, session: AsyncSession, user_id: str) -> int:
        member_spaces = select(SpaceMemberModel.space_id).where(
            SpaceMemberModel.user_id == user_id
        )
        stmt = (
            update(SpaceResourceUsageModel)
            .where(SpaceResourceUsageModel.space_id.in_(member_spaces))
            .values(submissions_this_month=0, updated_at=self._now())
        )
        result = await session.execute(stmt)
        count = result.rowcount or 0
        logger.info(f"Reset monthly submissions for user {user_id} ({count} spaces)")
        return count

    async def roll_over_if_due(self, session: AsyncSession, user_id: str) -> bool:
        """
        Reset monthly counters if the billing period has elapsed.

        The subscription row is locked for the check, and the period window is
        advanced in the same transaction, so concurrent callers reset at most once.
        Returns True if a reset happened.
        """
        sub = await queries.get_subscription(session, user_id, for_update=True)
        if sub is None or sub.current_period_end is None:
            return False

        now = self._now()
        period_end = ensure_utc(sub.current_period_end)
        if now <= period_end:
            return False

        await self._reset_counters(session, user_id)

        if self._settings.ADVANCE_PERIOD_ON_RESET:
            period_start = ensure_utc(sub.current_period_start)
            if period_start is not None and period_end > period_start:
                length = period_end - period_start
            else:
                length = timedelta(days=self._settings.DEFAULT_BILLING_PERIOD_DAYS)
            elapsed_periods = (now - period_end) // length + 1
            sub.current_period_start = period_end + length * (elapsed_periods - 1)
            sub.current_period_end = period_end + length * elapsed_periods
            await session.flush()
            logger.info(
                f"Advanced billing period for user {user_id} to end at "
                f"{sub.current_period_end.isoformat()}"
            )
        return True

    # ------------------------------------------------------------------
    # Counter writes (called by write-path collaborators)
    # ------------------------------------------------------------------

    async def init_space_usage(self, space_id: str) -> SpaceUsage:
        """Create the zeroed counter row for a new space. Idempotent."""
        async with self._db.session() as session:
            usage = await queries.get_or_create_space_usage(session, space_id)
            logger.debug(f"Usage counters ready for space {space_id}")
            return SpaceUsage.from_model(usage)

    async def adjust_usage(
        self,
        space_id: str,
        *,
        storage_mb: Union[int, float] = 0,
        submissions: int = 0,
        members: int = 0,
        forms: int = 0,
    ) -> SpaceUsage:
        """
        Atomically apply counter deltas for a space.

        A positive submissions delta also increments total_submissions;
        deleting submissions only reduces this month's count. Results are
        clamped at zero.

        Args:
            space_id: Space ID
            storage_mb: MB added (positive) or removed (negative)
            submissions: Submissions accepted (positive) or deleted (negative)
            members: Member delta
            forms: Form delta

        Returns:
            Counters after the update
        """
        async with self._db.session() as session:
            usage = await queries.get_or_create_space_usage(
                session, space_id, for_update=True
            )

            deltas = {
                "used_storage_mb": _whole_mb(storage_mb),
                "submissions_this_month": submissions,
                "total_submissions": max(0, submissions),
                "active_members": members,
                "active_forms": forms,
            }
            for column, delta in deltas.items():
                if not delta:
                    continue
                new_value = (getattr(usage, column) or 0) + delta
                if new_value < 0:
                    logger.warning(
                        f"Clamped {column} at 0 for space {space_id} (delta={delta})"
                    )
                    new_value = 0
                setattr(usage, column, new_value)

            await session.flush()
            logger.debug(f"Adjusted usage for space {space_id}: {deltas}")
            return SpaceUsage.from_model(usage)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_space_usage(self, space_id: str) -> Optional[SpaceUsage]:
        async with self._db.session() as session:
            usage = await queries.get_space_usage(session, space_id)
            return SpaceUsage.from_model(usage) if usage else None

    async def get_current_usage(self, user_id: str) -> UserUsage:
        """
        Usage summed across all of a user's spaces.

        The lazy rollover is best-effort here: this feeds dashboards, so a
        failed reset is logged and the read continues.
        """
        try:
            async with self._db.session() as session:
                await self.roll_over_if_due(session, user_id)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to check billing period for user {user_id}: {e}")

        async with self._db.session() as session:
            sub = await load_subscription(session, user_id)
            spaces = await queries.list_user_spaces(session, user_id)
            usages = await queries.list_space_usage(session, [s for s, _ in spaces])

        return UserUsage(
            current_spaces=len(spaces),
            max_spaces=sub.max_spaces,
            submissions_this_month=sum(u.submissions_this_month for u in usages),
            max_submissions_per_month=sub.max_submissions_per_month,
            used_storage_mb=sum(u.used_storage_mb for u in usages),
            max_storage_mb=sub.max_storage_mb,
            tier=sub.tier,
            overage_mode=sub.overage_mode,
        )

    async def get_space_usage_with_limits(
        self, user_id: str, summary: Optional[AllocationSummary] = None
    ) -> List[SpaceUsageWithLimits]:
        """Per-space usage against each space's allocated share."""
        if summary is None:
            summary = await self._allocations.get_allocations(user_id)

        async with self._db.session() as session:
            usages = await queries.list_space_usage(
                session, [a.space_id for a in summary.allocations]
            )
        by_space = {u.space_id: u for u in usages}

        results = []
        for allocation in summary.allocations:
            usage = by_space.get(allocation.space_id)
            used_storage = usage.used_storage_mb if usage else 0
            this_month = usage.submissions_this_month if usage else 0
            results.append(
                SpaceUsageWithLimits(
                    space_id=allocation.space_id,
                    space_name=allocation.space_name,
                    used_storage_mb=used_storage,
                    submissions_this_month=this_month,
                    total_submissions=usage.total_submissions if usage else 0,
                    active_members=usage.active_members if usage else 0,
                    active_forms=usage.active_forms if usage else 0,
                    allocated_storage_mb=allocation.allocated_storage_mb,
                    allocated_submissions_per_month=allocation.allocated_submissions_per_month,
                    storage_percentage=allocation.storage_percentage,
                    submission_percentage=allocation.submission_percentage,
                    storage_usage_percent=round(
                        _usage_percent(used_storage, allocation.allocated_storage_mb), 2
                    ),
                    submission_usage_percent=round(
                        _usage_percent(this_month, allocation.allocated_submissions_per_month), 2
                    ),
                )
            )
        return results


# Singleton instance
usage_service = UsageService()
