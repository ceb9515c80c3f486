from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from formspace_core.services.allocation_service import AllocationEntry
from formspace_core.services.quota_service import NO_ACCESS_REASON
from formspace_core.services.tiers import UNLIMITED


@pytest.mark.asyncio
async def test_submission_allowed_below_limit(quota, subscriptions, make_space, set_usage) -> None:
    await subscriptions.create_subscription("u1", tier="pro")
    space = await make_space("u1")
    await set_usage(space, submissions_this_month=4999)

    result = await quota.can_accept_submission("u1", space)

    assert result.allowed
    assert not result.overage
    assert result.current_usage == 4999
    assert result.limit == 5000


@pytest.mark.asyncio
async def test_submission_denied_at_limit_in_pause_mode(
    quota, subscriptions, make_space, set_usage
) -> None:
    await subscriptions.create_subscription("u1", tier="pro", overage_mode="pause")
    space = await make_space("u1")
    await set_usage(space, submissions_this_month=5000)

    result = await quota.can_accept_submission("u1", space)

    assert not result.allowed
    assert result.reason == (
        "This space has reached its monthly submission limit (5,000). "
        "Reallocate resources or upgrade your plan."
    )
    assert result.current_usage == 5000
    assert result.limit == 5000


@pytest.mark.asyncio
async def test_submission_allowed_with_overage_in_auto_bill_mode(
    quota, subscriptions, make_space, set_usage
) -> None:
    await subscriptions.create_subscription("u1", tier="pro", overage_mode="auto_bill")
    space = await make_space("u1")
    await set_usage(space, submissions_this_month=5000)

    result = await quota.can_accept_submission("u1", space)

    assert result.allowed
    assert result.overage
    assert result.reason is None
    assert result.limit == 5000


@pytest.mark.asyncio
async def test_submission_limit_follows_space_allocation(
    quota, allocations, subscriptions, make_space, set_usage
) -> None:
    await subscriptions.create_subscription("u1", tier="pro")
    a = await make_space("u1")
    b = await make_space("u1")
    await allocations.update_allocations(
        "u1",
        [
            AllocationEntry(space_id=a, storage_percentage=50, submission_percentage=80),
            AllocationEntry(space_id=b, storage_percentage=50, submission_percentage=20),
        ],
    )
    await set_usage(a, submissions_this_month=1000)
    await set_usage(b, submissions_this_month=1000)

    busy = await quota.can_accept_submission("u1", a)
    full = await quota.can_accept_submission("u1", b)

    assert busy.allowed
    assert busy.limit == 4000
    assert not full.allowed
    assert "(1,000)" in full.reason


@pytest.mark.asyncio
async def test_submission_denied_without_access(quota, subscriptions, make_space) -> None:
    await subscriptions.create_subscription("u1", tier="pro")
    await make_space("u1")
    other = await make_space("u2")

    result = await quota.can_accept_submission("u1", other)

    assert not result.allowed
    assert result.reason == NO_ACCESS_REASON


@pytest.mark.asyncio
@pytest.mark.parametrize("used", [0, 1])
async def test_submission_denied_without_access_whatever_the_usage(
    quota, subscriptions, make_space, set_usage, used
) -> None:
    await subscriptions.create_subscription("u1", tier="pro", overage_mode="auto_bill")
    await make_space("u1")
    other = await make_space("u2")
    await set_usage(other, submissions_this_month=used)

    result = await quota.can_accept_submission("u1", other)

    assert not result.allowed
    assert not result.overage
    assert result.reason == NO_ACCESS_REASON


@pytest.mark.asyncio
async def test_missing_usage_row_allows_submission(quota, make_space) -> None:
    space = await make_space("u1")

    result = await quota.can_accept_submission("u1", space)

    assert result.allowed
    assert not result.overage
    assert result.current_usage is None


@pytest.mark.asyncio
async def test_first_check_creates_auto_split(quota, allocations, subscriptions, make_space) -> None:
    await subscriptions.create_subscription("u1", tier="pro")
    a = await make_space("u1")
    await make_space("u1")

    await quota.can_accept_submission("u1", a)
    summary = await allocations.get_allocations("u1")

    assert [x.submission_percentage for x in summary.allocations] == [50, 50]


@pytest.mark.asyncio
async def test_concurrent_checks_before_allocations_exist(
    quota, allocations, subscriptions, make_space, set_usage
) -> None:
    await subscriptions.create_subscription("u1", tier="pro")
    a = await make_space("u1")
    await make_space("u1")
    await set_usage(a, submissions_this_month=10)

    results = await asyncio.gather(
        quota.can_accept_submission("u1", a),
        quota.can_accept_submission("u1", a),
    )

    assert [r.allowed for r in results] == [True, True]
    assert [r.limit for r in results] == [2500, 2500]
    summary = await allocations.get_allocations("u1")
    assert [x.submission_percentage for x in summary.allocations] == [50, 50]


@pytest.mark.asyncio
async def test_expired_period_resets_counters_before_decision(
    quota, subscriptions, usage, make_space, set_usage, clock
) -> None:
    period_end = clock.now - timedelta(hours=1)
    period_start = period_end - timedelta(days=30)
    await subscriptions.create_subscription(
        "u1", tier="pro", current_period_start=period_start, current_period_end=period_end
    )
    space = await make_space("u1")
    await set_usage(space, submissions_this_month=5000, total_submissions=12000, used_storage_mb=700)

    result = await quota.can_accept_submission("u1", space)

    assert result.allowed
    assert result.current_usage == 0
    counters = await usage.get_space_usage(space)
    assert counters.submissions_this_month == 0
    assert counters.total_submissions == 12000
    assert counters.used_storage_mb == 700

    sub = await subscriptions.get_user_subscription("u1")
    assert sub.current_period_start == period_end
    assert sub.current_period_end == period_end + timedelta(days=30)


@pytest.mark.asyncio
async def test_rollover_happens_once_per_period(
    quota, subscriptions, usage, make_space, set_usage, clock
) -> None:
    period_end = clock.now - timedelta(minutes=5)
    await subscriptions.create_subscription(
        "u1",
        tier="pro",
        current_period_start=period_end - timedelta(days=30),
        current_period_end=period_end,
    )
    space = await make_space("u1")
    await set_usage(space, submissions_this_month=10)

    await quota.can_accept_submission("u1", space)
    await usage.adjust_usage(space, submissions=3)
    clock.advance(days=1)
    result = await quota.can_accept_submission("u1", space)

    assert result.current_usage == 3
    assert not await usage.should_reset_billing_period("u1")


@pytest.mark.asyncio
async def test_rollover_skips_several_missed_periods(
    quota, subscriptions, make_space, clock
) -> None:
    period_end = clock.now - timedelta(days=65)
    await subscriptions.create_subscription(
        "u1",
        tier="pro",
        current_period_start=period_end - timedelta(days=30),
        current_period_end=period_end,
    )
    space = await make_space("u1")

    await quota.can_accept_submission("u1", space)
    sub = await subscriptions.get_user_subscription("u1")

    assert sub.current_period_start == period_end + timedelta(days=60)
    assert sub.current_period_end == period_end + timedelta(days=90)
    assert sub.current_period_end > clock.now


@pytest.mark.asyncio
async def test_period_not_yet_ended_keeps_counters(
    quota, subscriptions, make_space, set_usage, clock
) -> None:
    await subscriptions.create_subscription(
        "u1",
        tier="pro",
        current_period_start=clock.now - timedelta(days=10),
        current_period_end=clock.now + timedelta(days=20),
    )
    space = await make_space("u1")
    await set_usage(space, submissions_this_month=5000)

    result = await quota.can_accept_submission("u1", space)

    assert not result.allowed
    assert result.current_usage == 5000


@pytest.mark.asyncio
async def test_upload_boundary(quota, make_space, set_usage) -> None:
    space = await make_space("u1")
    await set_usage(space, used_storage_mb=90)

    exact = await quota.can_upload_file("u1", space, 10)
    over = await quota.can_upload_file("u1", space, 10.5)

    assert exact.allowed
    assert exact.current_usage == 90
    assert exact.limit == 100
    assert not over.allowed
    assert over.reason == (
        "This space has reached its storage limit (100MB). "
        "Reallocate resources or upgrade your plan."
    )


@pytest.mark.asyncio
async def test_upload_without_usage_row_counts_as_empty(quota, make_space) -> None:
    space = await make_space("u1")

    fits = await quota.can_upload_file("u1", space, 100)
    too_big = await quota.can_upload_file("u1", space, 101)

    assert fits.allowed
    assert fits.current_usage == 0
    assert not too_big.allowed
    assert too_big.current_usage == 0


@pytest.mark.asyncio
async def test_upload_over_limit_in_auto_bill_mode(
    quota, subscriptions, make_space, set_usage
) -> None:
    await subscriptions.create_subscription("u1", tier="pro", overage_mode="auto_bill")
    space = await make_space("u1")
    await set_usage(space, used_storage_mb=10240)

    result = await quota.can_upload_file("u1", space, 1)

    assert result.allowed
    assert result.overage


@pytest.mark.asyncio
async def test_upload_denied_without_access(quota, make_space) -> None:
    other = await make_space("u2")

    result = await quota.can_upload_file("u1", other, 1)

    assert not result.allowed
    assert result.reason == NO_ACCESS_REASON


@pytest.mark.asyncio
@pytest.mark.parametrize("used_mb", [0, 10])
async def test_upload_denied_without_access_whatever_the_usage(
    quota, make_space, set_usage, used_mb
) -> None:
    await make_space("u1")
    other = await make_space("u2")
    await set_usage(other, used_storage_mb=used_mb)

    result = await quota.can_upload_file("u1", other, 1)

    assert not result.allowed
    assert result.reason == NO_ACCESS_REASON


@pytest.mark.asyncio
async def test_can_create_space(quota, subscriptions, make_space) -> None:
    assert (await quota.can_create_space("u1")).allowed

    await make_space("u1")
    denied = await quota.can_create_space("u1")

    assert not denied.allowed
    assert denied.reason == (
        "You have reached your space limit (1). Upgrade your plan to create more spaces."
    )
    assert denied.current_usage == 1

    await subscriptions.create_subscription("u1", tier="pro")
    assert (await quota.can_create_space("u1")).allowed


@pytest.mark.asyncio
async def test_can_create_form(quota, subscriptions, make_space, set_usage) -> None:
    space = await make_space("u1")
    await set_usage(space, active_forms=3)

    denied = await quota.can_create_form("u1", space)

    assert not denied.allowed
    assert denied.reason == (
        "This space has reached its form limit (3). Upgrade your plan to create more forms."
    )

    await subscriptions.create_subscription("u1", tier="pro")
    allowed = await quota.can_create_form("u1", space)

    assert allowed.allowed
    assert allowed.limit == UNLIMITED


@pytest.mark.asyncio
async def test_can_add_user(quota, subscriptions, make_space, join_space) -> None:
    space = await make_space("u1")
    for i in range(3):
        await join_space(f"member-{i}", space)

    assert (await quota.can_add_user("u1", space)).allowed

    await join_space("member-3", space)
    denied = await quota.can_add_user("u1", space)

    assert not denied.allowed
    assert denied.current_usage == 5
    assert denied.reason == (
        "This space has reached its user limit (5). Upgrade your plan to add more users."
    )

    await subscriptions.create_subscription("u1", tier="business")
    unlimited = await quota.can_add_user("u1", space)

    assert unlimited.allowed
    assert unlimited.limit == UNLIMITED
