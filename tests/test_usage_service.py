from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from formspace_core.config import QuotaSettings
from formspace_core.models import SpaceResourceUsageModel
from formspace_core.services.allocation_service import AllocationEntry
from formspace_core.services.usage_service import UsageService


@pytest.mark.asyncio
async def test_free_user_never_needs_reset(usage) -> None:
    assert not await usage.should_reset_billing_period("u1")


@pytest.mark.asyncio
async def test_should_reset_after_period_end(usage, subscriptions, clock) -> None:
    await subscriptions.create_subscription(
        "u1",
        tier="pro",
        current_period_start=clock.now - timedelta(days=29),
        current_period_end=clock.now + timedelta(days=1),
    )

    assert not await usage.should_reset_billing_period("u1")
    clock.advance(days=1)
    # Boundary: the period end itself is still inside the period
    assert not await usage.should_reset_billing_period("u1")
    clock.advance(seconds=1)
    assert await usage.should_reset_billing_period("u1")


@pytest.mark.asyncio
async def test_reset_monthly_usage_only_touches_monthly_counter(
    usage, make_space, set_usage
) -> None:
    a = await make_space("u1")
    b = await make_space("u1")
    other = await make_space("u2")
    await set_usage(a, submissions_this_month=40, total_submissions=400, used_storage_mb=12)
    await set_usage(b, submissions_this_month=7, total_submissions=7, active_forms=2)
    await set_usage(other, submissions_this_month=99)

    count = await usage.reset_monthly_usage("u1")

    assert count == 2
    first = await usage.get_space_usage(a)
    assert first.submissions_this_month == 0
    assert first.total_submissions == 400
    assert first.used_storage_mb == 12
    assert (await usage.get_space_usage(b)).active_forms == 2
    assert (await usage.get_space_usage(other)).submissions_this_month == 99


@pytest.mark.asyncio
async def test_rollover_without_advancing_period(
    database, subscriptions, make_space, set_usage, clock
) -> None:
    settings = QuotaSettings(ADVANCE_PERIOD_ON_RESET=False)
    tracker = UsageService(database, settings, time_provider=clock)
    period_end = clock.now - timedelta(days=1)
    await subscriptions.create_subscription(
        "u1", tier="pro", current_period_end=period_end
    )
    space = await make_space("u1")
    await set_usage(space, submissions_this_month=5)

    async with database.session() as session:
        assert await tracker.roll_over_if_due(session, "u1")

    assert (await tracker.get_space_usage(space)).submissions_this_month == 0
    sub = await subscriptions.get_user_subscription("u1")
    assert sub.current_period_end == period_end


@pytest.mark.asyncio
async def test_rollover_uses_default_length_without_period_start(
    usage, database, subscriptions, make_space, clock
) -> None:
    period_end = clock.now - timedelta(days=1)
    await subscriptions.create_subscription("u1", tier="pro", current_period_end=period_end)
    await make_space("u1")

    async with database.session() as session:
        assert await usage.roll_over_if_due(session, "u1")
        assert not await usage.roll_over_if_due(session, "u1")

    sub = await subscriptions.get_user_subscription("u1")
    assert sub.current_period_start == period_end
    assert sub.current_period_end == period_end + timedelta(days=30)


@pytest.mark.asyncio
async def test_init_space_usage_is_idempotent(usage, make_space) -> None:
    space = await make_space("u1")

    created = await usage.init_space_usage(space)
    await usage.adjust_usage(space, forms=1)
    again = await usage.init_space_usage(space)

    assert created.active_forms == 0
    assert again.active_forms == 1


@pytest.mark.asyncio
async def test_concurrent_init_creates_one_counter_row(usage, make_space, database) -> None:
    space = await make_space("u1")

    first, second = await asyncio.gather(
        usage.init_space_usage(space),
        usage.init_space_usage(space),
    )

    assert first.submissions_this_month == second.submissions_this_month == 0
    async with database.session() as session:
        rows = (
            await session.execute(
                select(func.count(SpaceResourceUsageModel.id)).where(
                    SpaceResourceUsageModel.space_id == space
                )
            )
        ).scalar()
    assert rows == 1


@pytest.mark.asyncio
async def test_adjust_usage_creates_missing_row(usage, make_space) -> None:
    space = await make_space("u1")

    counters = await usage.adjust_usage(space, submissions=2)

    assert counters.submissions_this_month == 2
    assert counters.total_submissions == 2
    assert (await usage.get_space_usage(space)).submissions_this_month == 2


@pytest.mark.asyncio
async def test_adjust_usage_applies_deltas(usage, make_space) -> None:
    space = await make_space("u1")

    await usage.adjust_usage(space, submissions=2, storage_mb=1.2, members=1, forms=1)
    counters = await usage.adjust_usage(space, submissions=-1, storage_mb=0.5)

    assert counters.submissions_this_month == 1
    # Deletions never reduce the lifetime total
    assert counters.total_submissions == 2
    assert counters.used_storage_mb == 3
    assert counters.active_members == 1
    assert counters.active_forms == 1


@pytest.mark.asyncio
async def test_adjust_usage_rounds_removals_down_and_clamps(
    usage, make_space, set_usage, caplog
) -> None:
    space = await make_space("u1")
    await set_usage(space, used_storage_mb=10, submissions_this_month=1)

    shrunk = await usage.adjust_usage(space, storage_mb=-2.7)
    clamped = await usage.adjust_usage(space, storage_mb=-50, submissions=-5)

    assert shrunk.used_storage_mb == 8
    assert clamped.used_storage_mb == 0
    assert clamped.submissions_this_month == 0
    assert "Clamped used_storage_mb at 0" in caplog.text


@pytest.mark.asyncio
async def test_get_space_usage_missing_row(usage) -> None:
    assert await usage.get_space_usage("missing") is None


@pytest.mark.asyncio
async def test_get_current_usage_sums_across_spaces(
    usage, subscriptions, make_space, set_usage
) -> None:
    await subscriptions.create_subscription("u1", tier="pro", overage_mode="auto_bill")
    a = await make_space("u1")
    b = await make_space("u1")
    await make_space("u1")
    await set_usage(a, submissions_this_month=10, used_storage_mb=100)
    await set_usage(b, submissions_this_month=5, used_storage_mb=20)

    totals = await usage.get_current_usage("u1")

    assert totals.current_spaces == 3
    assert totals.max_spaces == 25
    assert totals.submissions_this_month == 15
    assert totals.max_submissions_per_month == 5000
    assert totals.used_storage_mb == 120
    assert totals.max_storage_mb == 10240
    assert totals.tier == "pro"
    assert totals.overage_mode == "auto_bill"


@pytest.mark.asyncio
async def test_get_current_usage_applies_rollover(
    usage, subscriptions, make_space, set_usage, clock
) -> None:
    await subscriptions.create_subscription(
        "u1",
        tier="pro",
        current_period_start=clock.now - timedelta(days=31),
        current_period_end=clock.now - timedelta(days=1),
    )
    space = await make_space("u1")
    await set_usage(space, submissions_this_month=42)

    totals = await usage.get_current_usage("u1")

    assert totals.submissions_this_month == 0


@pytest.mark.asyncio
async def test_get_current_usage_tolerates_failed_rollover(
    usage, make_space, set_usage, monkeypatch, caplog
) -> None:
    space = await make_space("u1")
    await set_usage(space, submissions_this_month=4)

    async def broken(session, user_id):
        raise SQLAlchemyError("lock timeout")

    monkeypatch.setattr(usage, "roll_over_if_due", broken)
    totals = await usage.get_current_usage("u1")

    assert totals.submissions_this_month == 4
    assert "Failed to check billing period for user u1" in caplog.text


@pytest.mark.asyncio
async def test_space_usage_with_limits(
    usage, allocations, subscriptions, make_space, set_usage
) -> None:
    await subscriptions.create_subscription("u1", tier="pro")
    a = await make_space("u1", "Intake")
    b = await make_space("u1", "Archive")
    await allocations.update_allocations(
        "u1",
        [
            AllocationEntry(space_id=a, storage_percentage=100, submission_percentage=10),
            AllocationEntry(space_id=b, storage_percentage=0, submission_percentage=90),
        ],
    )
    await set_usage(a, used_storage_mb=1024, submissions_this_month=600)

    rows = await usage.get_space_usage_with_limits("u1")

    assert [r.space_name for r in rows] == ["Intake", "Archive"]
    intake, archive = rows
    assert intake.allocated_storage_mb == 10240
    assert intake.storage_usage_percent == 10.0
    assert intake.allocated_submissions_per_month == 500
    # Over-allocation is capped for display
    assert intake.submission_usage_percent == 100.0
    assert archive.allocated_storage_mb == 0
    assert archive.storage_usage_percent == 0.0
    assert archive.submissions_this_month == 0
    assert archive.submission_percentage == 90
