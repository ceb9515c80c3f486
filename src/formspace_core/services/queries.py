"""
Session-level queries shared by the quota services.

Every helper takes the caller's AsyncSession so that a logical operation
(e.g. a quota check with its lazy reset) runs in a single transaction.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from formspace_core.models import (
    SpaceMemberModel,
    SpaceModel,
    SpaceResourceAllocationModel,
    SpaceResourceUsageModel,
    SubscriptionModel,
)


async def get_subscription(
    session: AsyncSession, user_id: str, for_update: bool = False
) -> Optional[SubscriptionModel]:
    stmt = select(SubscriptionModel).where(SubscriptionModel.user_id == user_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_user_spaces(session: AsyncSession, user_id: str) -> List[Tuple[str, str]]:
    """(space_id, space_name) for every space the user belongs to, in membership order."""
    stmt = (
        select(SpaceMemberModel.space_id, SpaceModel.name)
        .join(SpaceModel, SpaceModel.id == SpaceMemberModel.space_id)
        .where(SpaceMemberModel.user_id == user_id)
        .order_by(SpaceMemberModel.created_at, SpaceMemberModel.id)
    )
    result = await session.execute(stmt)
    return [(row.space_id, row.name) for row in result]


async def count_space_members(session: AsyncSession, space_id: str) -> int:
    stmt = select(func.count(SpaceMemberModel.id)).where(
        SpaceMemberModel.space_id == space_id
    )
    result = await session.execute(stmt)
    return result.scalar() or 0


async def list_user_allocations(
    session: AsyncSession, user_id: str
) -> List[SpaceResourceAllocationModel]:
    stmt = select(SpaceResourceAllocationModel).where(
        SpaceResourceAllocationModel.user_id == user_id
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def delete_user_allocations(
    session: AsyncSession, user_id: str, space_id: Optional[str] = None
) -> int:
    """Delete a user's allocation rows (all, or one space). Returns rows deleted."""
    stmt = delete(SpaceResourceAllocationModel).where(
        SpaceResourceAllocationModel.user_id == user_id
    )
    if space_id is not None:
        stmt = stmt.where(SpaceResourceAllocationModel.space_id == space_id)
    result = await session.execute(stmt)
    return result.rowcount or 0


async def get_space_usage(
    session: AsyncSession, space_id: str, for_update: bool = False
) -> Optional[SpaceResourceUsageModel]:
    stmt = select(SpaceResourceUsageModel).where(
        SpaceResourceUsageModel.space_id == space_id
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_space_usage(
    session: AsyncSession, space_ids: Sequence[str]
) -> List[SpaceResourceUsageModel]:
    if not space_ids:
        return []
    stmt = select(SpaceResourceUsageModel).where(
        SpaceResourceUsageModel.space_id.in_(list(space_ids))
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


def _upsert(session: AsyncSession, model):
    """Dialect INSERT supporting ON CONFLICT (PostgreSQL, or SQLite in tests)."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)


async def insert_allocations_if_missing(
    session: AsyncSession, user_id: str, shares: Sequence[Tuple[str, int]]
) -> int:
    """
    Insert unlocked (space_id, percentage) rows for a user.

    Rows whose (user_id, space_id) already exists are skipped, so concurrent
    lazy creation converges on whichever rows committed first.
    """
    if not shares:
        return 0
    values: List[Dict[str, Any]] = [
        {
            "id": str(uuid4()),
            "user_id": user_id,
            "space_id": space_id,
            "storage_percentage": share,
            "submission_percentage": share,
            "storage_is_locked": False,
            "submission_is_locked": False,
        }
        for space_id, share in shares
    ]
    stmt = (
        _upsert(session, SpaceResourceAllocationModel)
        .values(values)
        .on_conflict_do_nothing(index_elements=["user_id", "space_id"])
    )
    result = await session.execute(stmt)
    return result.rowcount or 0


async def get_or_create_space_usage(
    session: AsyncSession, space_id: str, for_update: bool = False
) -> SpaceResourceUsageModel:
    """Load a space's counter row, inserting a zeroed one if none exists."""
    usage = await get_space_usage(session, space_id, for_update=for_update)
    if usage is not None:
        return usage

    stmt = (
        _upsert(session, SpaceResourceUsageModel)
        .values(
            id=str(uuid4()),
            space_id=space_id,
            used_storage_mb=0,
            submissions_this_month=0,
            total_submissions=0,
            active_members=0,
            active_forms=0,
        )
        .on_conflict_do_nothing(index_elements=["space_id"])
    )
    await session.execute(stmt)
    return await get_space_usage(session, space_id, for_update=for_update)
