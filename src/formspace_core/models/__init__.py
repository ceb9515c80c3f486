"""
SQLAlchemy 2.0 async models.

Core tables:
- Spaces: Tenant-scoped workspaces that hold forms and members
- SpaceMembers: User membership in spaces

Quota tables:
- Subscriptions: Per-user tier, limits, overage mode and billing period
- SpaceResourceAllocations: Per-user, per-space percentage shares of the quota
- SpaceResourceUsage: Per-space usage counters
"""

from formspace_core.models.base import Base, Tier, OverageMode, SpaceRole
from formspace_core.models.core import SpaceModel, SpaceMemberModel
from formspace_core.models.usage import (
    SubscriptionModel,
    SpaceResourceAllocationModel,
    SpaceResourceUsageModel,
    # Aliases
    Subscription,
    SpaceResourceAllocation,
    SpaceResourceUsage,
)

__all__ = [
    # Base
    "Base",
    "Tier",
    "OverageMode",
    "SpaceRole",
    # Core models
    "SpaceModel",
    "SpaceMemberModel",
    # Quota models
    "SubscriptionModel",
    "SpaceResourceAllocationModel",
    "SpaceResourceUsageModel",
    "Subscription",
    "SpaceResourceAllocation",
    "SpaceResourceUsage",
]
