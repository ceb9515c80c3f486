"""
AllocationService - Per-space percentage shares of a user's subscription quota.

Pro/Business users divide their storage and monthly submission quota across
the spaces they belong to. For each user the storage shares sum to 100 and the
submission shares sum to 100.

Key behaviors:
- No rows yet: an even split is generated lazily on first read, with the
  remainder going to the first space in membership order ([34, 33, 33]).
- Space added under manual allocations: the new space gets a 0% row and the
  existing shares are left alone, so the new space has no quota until the
  user reallocates.
- Space removed: the remaining rows are reset to an even split.
- Manual updates replace every row for the user in one transaction.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncSession

from formspace_core.config import QuotaSettings, get_quota_settings
from formspace_core.db import DatabaseManager, db
from formspace_core.models import SpaceResourceAllocationModel
from formspace_core.services import queries
from formspace_core.services.subscription_service import (
    SubscriptionInfo,
    load_subscription,
)

logger = logging.getLogger(__name__)


@dataclass
class SpaceAllocation:
    """A space's resolved share and the absolute amounts it grants."""

    space_id: str
    space_name: str
    storage_percentage: int
    submission_percentage: int
    storage_is_locked: bool
    submission_is_locked: bool
    allocated_storage_mb: int
    allocated_submissions_per_month: int


@dataclass
class AllocationSummary:
    """All of a user's space allocations against their subscription totals."""

    total_storage_mb: int
    total_submissions_per_month: int
    allocations: List[SpaceAllocation] = field(default_factory=list)
    is_auto_allocated: bool = True
    is_balanced: bool = True

    @property
    def total_storage_percentage(self) -> int:
        return sum(a.storage_percentage for a in self.allocations)

    @property
    def total_submission_percentage(self) -> int:
        return sum(a.submission_percentage for a in self.allocations)

    def get(self, space_id: str) -> Optional[SpaceAllocation]:
        for allocation in self.allocations:
            if allocation.space_id == space_id:
                return allocation
        return None


@dataclass
class AllocationEntry:
    """One caller-supplied row for update_allocations."""

    space_id: str
    storage_percentage: float
    submission_percentage: float
    storage_is_locked: bool = False
    submission_is_locked: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AllocationEntry":
        return cls(
            space_id=data["space_id"],
            storage_percentage=data["storage_percentage"],
            submission_percentage=data["submission_percentage"],
            storage_is_locked=bool(data.get("storage_is_locked", False)),
            submission_is_locked=bool(data.get("submission_is_locked", False)),
        )


@dataclass
class AllocationUpdateResult:
    """Outcome of update_allocations. error is shown to the end user verbatim."""

    success: bool
    error: Optional[str] = None


def even_split(count: int, total: int = 100) -> List[int]:
    """Split total into count whole shares; the first share takes the remainder."""
    if count <= 0:
        return []
    share = total // count
    remainder = total - share * count
    return [share + remainder] + [share] * (count - 1)


def allocated_amount(percentage: int, total: int) -> int:
    """floor(percentage / 100 * total)."""
    return (percentage * total) // 100


def is_even_split(rows: Sequence[SpaceResourceAllocationModel]) -> bool:
    """True when rows look system-generated: unlocked and matching even_split."""
    if not rows:
        return True
    if any(r.storage_is_locked or r.submission_is_locked for r in rows):
        return False
    expected = sorted(even_split(len(rows)))
    return (
        sorted(r.storage_percentage for r in rows) == expected
        and sorted(r.submission_percentage for r in rows) == expected
    )


def _is_whole_percentage(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return float(value).is_integer()


class AllocationService:
    """
    Allocation store.

    Public methods each run in their own transaction. load_summary() takes
    the caller's session so the quota gate can resolve allocations inside
    its own transaction.
    """

    def __init__(
        self,
        database: Optional[DatabaseManager] = None,
        settings: Optional[QuotaSettings] = None,
    ):
        self._db = database or db
        self._settings = settings or get_quota_settings()

    async def get_allocations(self, user_id: str) -> AllocationSummary:
        """Get allocations for every space the user belongs to, creating them if needed."""
        async with self._db.session() as session:
            return await self.load_summary(session, user_id)

    async def get_space_allocation(
        self, user_id: str, space_id: str
    ) -> Optional[SpaceAllocation]:
        """Get one space's allocation, or None if the user is not a member."""
        summary = await self.get_allocations(user_id)
        return summary.get(space_id)

    async def load_summary(
        self,
        session: AsyncSession,
        user_id: str,
        subscription: Optional[SubscriptionInfo] = None,
    ) -> AllocationSummary:
        sub = subscription or await load_subscription(session, user_id)
        spaces = await queries.list_user_spaces(session, user_id)

        if not spaces:
            return AllocationSummary(
                total_storage_mb=sub.max_storage_mb,
                total_submissions_per_month=sub.max_submissions_per_month,
            )

        rows = await queries.list_user_allocations(session, user_id)

        if not rows:
            await self._create_auto_split(session, user_id, [s for s, _ in spaces])
            # Re-read: a concurrent request may have created the rows first
            rows = await queries.list_user_allocations(session, user_id)
            is_auto = True
        else:
            by_space = {r.space_id: r for r in rows}
            missing = [space_id for space_id, _ in spaces if space_id not in by_space]
            if missing:
                # Existing shares are preserved; the new spaces start at 0%
                await queries.insert_allocations_if_missing(
                    session, user_id, [(space_id, 0) for space_id in missing]
                )
                rows = await queries.list_user_allocations(session, user_id)
                logger.info(
                    f"Added 0% allocations for user {user_id} in spaces {missing}"
                )
            is_auto = not missing and is_even_split(rows)

        return self._build_summary(sub, spaces, rows, is_auto)

    async def _create_auto_split(
        self, session: AsyncSession, user_id: str, space_ids: List[str]
    ) -> None:
        shares = even_split(len(space_ids))
        created = await queries.insert_allocations_if_missing(
            session, user_id, list(zip(space_ids, shares))
        )
        if created:
            logger.info(f"Created auto-split allocations for user {user_id}: {shares}")

    def _build_summary(
        self,
        sub: SubscriptionInfo,
        spaces: List[Tuple[str, str]],
        rows: Iterable[SpaceResourceAllocationModel],
        is_auto: bool,
    ) -> AllocationSummary:
        by_space = {r.space_id: r for r in rows}
        allocations = []
        for space_id, space_name in spaces:
            row = by_space.get(space_id)
            if row is None:
                continue
            allocations.append(
                SpaceAllocation(
                    space_id=space_id,
                    space_name=space_name,
                    storage_percentage=row.storage_percentage,
                    submission_percentage=row.submission_percentage,
                    storage_is_locked=bool(row.storage_is_locked),
                    submission_is_locked=bool(row.submission_is_locked),
                    allocated_storage_mb=allocated_amount(
                        row.storage_percentage, sub.max_storage_mb
                    ),
                    allocated_submissions_per_month=allocated_amount(
                        row.submission_percentage, sub.max_submissions_per_month
                    ),
                )
            )

        summary = AllocationSummary(
            total_storage_mb=sub.max_storage_mb,
            total_submissions_per_month=sub.max_submissions_per_month,
            allocations=allocations,
            is_auto_allocated=is_auto,
        )
        tolerance = self._settings.ALLOCATION_SUM_TOLERANCE
        summary.is_balanced = (
            abs(summary.total_storage_percentage - 100) <= tolerance
            and abs(summary.total_submission_percentage - 100) <= tolerance
        )
        return summary

    def _validate_entries(self, entries: List[AllocationEntry]) -> Optional[str]:
        if not entries:
            return "At least one space allocation is required"

        space_ids = [e.space_id for e in entries]
        if len(set(space_ids)) != len(space_ids):
            return "Each space can only be allocated once"

        for entry in entries:
            if not _is_whole_percentage(entry.storage_percentage) or not (
                0 <= entry.storage_percentage <= 100
            ):
                return "Storage percentage must be a whole number between 0 and 100"
            if not _is_whole_percentage(entry.submission_percentage) or not (
                0 <= entry.submission_percentage <= 100
            ):
                return "Submission percentage must be a whole number between 0 and 100"

        tolerance = self._settings.ALLOCATION_SUM_TOLERANCE
        total_storage = sum(e.storage_percentage for e in entries)
        if abs(total_storage - 100) > tolerance:
            return f"Storage percentages must sum to 100% (currently {total_storage:.2f}%)"

        total_submissions = sum(e.submission_percentage for e in entries)
        if abs(total_submissions - 100) > tolerance:
            return (
                f"Submission percentages must sum to 100% "
                f"(currently {total_submissions:.2f}%)"
            )
        return None

    async def update_allocations(
        self,
        user_id: str,
        entries: Sequence[Union[AllocationEntry, Dict[str, Any]]],
    ) -> AllocationUpdateResult:
        """
        Replace all of a user's allocations.

        Validation failures are returned, never raised, and leave the stored
        rows untouched. The delete and insert share one transaction.
        """
        try:
            parsed = [
                e if isinstance(e, AllocationEntry) else AllocationEntry.from_dict(e)
                for e in entries
            ]
        except (KeyError, TypeError):
            return AllocationUpdateResult(success=False, error="Invalid allocation data")

        error = self._validate_entries(parsed)
        if error:
            logger.debug(f"Rejected allocation update for user {user_id}: {error}")
            return AllocationUpdateResult(success=False, error=error)

        async with self._db.session() as session:
            member_space_ids = {s for s, _ in await queries.list_user_spaces(session, user_id)}
            if any(e.space_id not in member_space_ids for e in parsed):
                return AllocationUpdateResult(
                    success=False,
                    error="You do not have access to one or more spaces",
                )

            await queries.delete_user_allocations(session, user_id)
            session.add_all(
                SpaceResourceAllocationModel(
                    user_id=user_id,
                    space_id=e.space_id,
                    storage_percentage=int(e.storage_percentage),
                    submission_percentage=int(e.submission_percentage),
                    storage_is_locked=e.storage_is_locked,
                    submission_is_locked=e.submission_is_locked,
                )
                for e in parsed
            )
            await session.flush()

        logger.info(f"Updated allocations for user {user_id} across {len(parsed)} spaces")
        return AllocationUpdateResult(success=True)

    async def reset_to_auto_split(self, user_id: str) -> None:
        """Delete all allocations; the next read regenerates an even split."""
        async with self._db.session() as session:
            deleted = await queries.delete_user_allocations(session, user_id)
        logger.info(f"Reset allocations to auto-split for user {user_id} ({deleted} rows)")

    async def on_space_added(self, user_id: str, space_id: str) -> bool:
        """
        Space lifecycle hook, called after the user joins or creates a space.

        Returns True if allocations were reset so the new space is included in
        the next even split, False if manual allocations were left untouched.
        """
        async with self._db.session() as session:
            rows = [
                r
                for r in await queries.list_user_allocations(session, user_id)
                if r.space_id != space_id
            ]
            if rows and not is_even_split(rows):
                logger.info(
                    f"User {user_id} has manual allocations; space {space_id} "
                    f"starts at 0% until reallocated"
                )
                return False

            await queries.delete_user_allocations(session, user_id)

        logger.info(f"Reset allocations to auto-split for user {user_id} after adding {space_id}")
        return True

    async def on_space_removed(self, user_id: str, space_id: str) -> bool:
        """
        Space lifecycle hook, called after a space is deleted or the user leaves it.

        Remaining allocations no longer sum to 100, so they are reset to an
        even split, discarding any manual configuration. Returns True if a
        reset happened.
        """
        async with self._db.session() as session:
            await queries.delete_user_allocations(session, user_id, space_id=space_id)
            remaining = await queries.list_user_allocations(session, user_id)
            if not remaining:
                return False

            if not is_even_split(remaining):
                logger.info(
                    f"Discarding manual allocations for user {user_id} after removing {space_id}"
                )
            await queries.delete_user_allocations(session, user_id)

        logger.info(f"Reset allocations to auto-split for user {user_id} after removing {space_id}")
        return True

    async def rebalance_unlocked(self, user_id: str) -> AllocationSummary:
        """
        Keep locked shares verbatim and split the rest evenly across unlocked spaces.

        Storage and submissions are rebalanced independently. A dimension is left
        unchanged when every space is locked in it or its locked shares exceed 100.
        """
        async with self._db.session() as session:
            sub = await load_subscription(session, user_id)
            # Ensures rows exist for every space
            await self.load_summary(session, user_id, subscription=sub)

            spaces = await queries.list_user_spaces(session, user_id)
            by_space = {r.space_id: r for r in await queries.list_user_allocations(session, user_id)}
            ordered = [by_space[s] for s, _ in spaces if s in by_space]

            for pct_attr, lock_attr in (
                ("storage_percentage", "storage_is_locked"),
                ("submission_percentage", "submission_is_locked"),
            ):
                locked_total = sum(getattr(r, pct_attr) for r in ordered if getattr(r, lock_attr))
                unlocked = [r for r in ordered if not getattr(r, lock_attr)]
                if not unlocked or locked_total > 100:
                    continue
                for row, share in zip(unlocked, even_split(len(unlocked), 100 - locked_total)):
                    setattr(row, pct_attr, share)

            await session.flush()
            summary = self._build_summary(sub, spaces, ordered, is_auto=is_even_split(ordered))

        logger.info(f"Rebalanced unlocked allocations for user {user_id}")
        return summary


# Singleton instance
allocation_service = AllocationService()
