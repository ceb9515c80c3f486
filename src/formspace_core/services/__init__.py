"""
formspace_core services.

Resource allocation, usage tracking and quota enforcement.
"""

from formspace_core.services.tiers import (
    TIER_LIMITS,
    TierLimits,
    UNLIMITED,
    get_tier_limits,
)
from formspace_core.services.subscription_service import (
    SubscriptionService,
    SubscriptionInfo,
    subscription_service,
)
from formspace_core.services.allocation_service import (
    AllocationService,
    AllocationSummary,
    AllocationEntry,
    AllocationUpdateResult,
    SpaceAllocation,
    allocation_service,
)
from formspace_core.services.usage_service import (
    UsageService,
    SpaceUsage,
    UserUsage,
    SpaceUsageWithLimits,
    usage_service,
)
from formspace_core.services.quota_service import (
    QuotaService,
    LimitCheckResult,
    quota_service,
)

__all__ = [
    # Tiers
    "TIER_LIMITS",
    "TierLimits",
    "UNLIMITED",
    "get_tier_limits",
    # Subscriptions
    "SubscriptionService",
    "SubscriptionInfo",
    "subscription_service",
    # Allocations
    "AllocationService",
    "AllocationSummary",
    "AllocationEntry",
    "AllocationUpdateResult",
    "SpaceAllocation",
    "allocation_service",
    # Usage
    "UsageService",
    "SpaceUsage",
    "UserUsage",
    "SpaceUsageWithLimits",
    "usage_service",
    # Quota gate
    "QuotaService",
    "LimitCheckResult",
    "quota_service",
]
