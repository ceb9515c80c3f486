from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator
from uuid import uuid4

import pytest
import pytest_asyncio

from formspace_core.config import QuotaSettings
from formspace_core.db import DatabaseManager
from formspace_core.models import (
    SpaceMemberModel,
    SpaceModel,
    SpaceResourceUsageModel,
    SpaceRole,
)
from formspace_core.services import (
    AllocationService,
    QuotaService,
    SubscriptionService,
    UsageService,
)

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


class Clock:
    """Settable time provider for the services."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncIterator[DatabaseManager]:
    # Fresh SQLite file per test
    manager = DatabaseManager(database_url=f"sqlite+aiosqlite:///{tmp_path / 'formspace.db'}")
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def clock() -> Clock:
    return Clock(datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings() -> QuotaSettings:
    return QuotaSettings()


@pytest.fixture
def allocations(database, settings) -> AllocationService:
    return AllocationService(database, settings)


@pytest.fixture
def usage(database, settings, clock, allocations) -> UsageService:
    return UsageService(database, settings, time_provider=clock, allocations=allocations)


@pytest.fixture
def quota(database, settings, clock, allocations, usage) -> QuotaService:
    return QuotaService(
        database, settings, time_provider=clock, allocations=allocations, usage=usage
    )


@pytest.fixture
def subscriptions(database) -> SubscriptionService:
    return SubscriptionService(database)


@pytest.fixture
def membership_times():
    # Strictly increasing created_at so membership order is deterministic
    counter = itertools.count()
    return lambda: BASE_TIME + timedelta(minutes=next(counter))


@pytest.fixture
def make_space(database, membership_times):
    """Create a space owned by user_id and return its id."""

    async def _make(user_id: str, name: str | None = None) -> str:
        space_id = str(uuid4())
        created = membership_times()
        async with database.session() as session:
            session.add(
                SpaceModel(
                    id=space_id,
                    name=name or f"Space {space_id[:8]}",
                    created_by=user_id,
                    created_at=created,
                    updated_at=created,
                )
            )
            session.add(
                SpaceMemberModel(
                    space_id=space_id,
                    user_id=user_id,
                    role=SpaceRole.OWNER.value,
                    created_at=created,
                )
            )
        return space_id

    return _make


@pytest.fixture
def join_space(database, membership_times):
    """Add user_id to an existing space as a member."""

    async def _join(user_id: str, space_id: str) -> None:
        async with database.session() as session:
            session.add(
                SpaceMemberModel(
                    space_id=space_id,
                    user_id=user_id,
                    role=SpaceRole.MEMBER.value,
                    created_at=membership_times(),
                )
            )

    return _join


@pytest.fixture
def set_usage(database):
    """Insert a usage counter row with the given values."""

    async def _set(space_id: str, **counters: int) -> None:
        values = {
            "used_storage_mb": 0,
            "submissions_this_month": 0,
            "total_submissions": 0,
            "active_members": 0,
            "active_forms": 0,
        }
        values.update(counters)
        async with database.session() as session:
            session.add(SpaceResourceUsageModel(space_id=space_id, **values))

    return _set
