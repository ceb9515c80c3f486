"""
Formspace Core Library.

Quota engine shared by the form-capture web services:
- SQLAlchemy models (spaces, members, subscriptions, allocations, usage)
- AllocationService: per-space percentage shares of a user's quota
- UsageService: per-space counters with lazy billing-cycle rollover
- QuotaService: allow/deny decisions for submissions, uploads, spaces, forms, members
- DatabaseManager for async connections (Cloud SQL + direct)
- Alembic migrations for schema management
"""

__version__ = "0.1.0"

# Re-export commonly used components
from formspace_core.models import (
    Base,
    Tier,
    OverageMode,
    SpaceRole,
    SpaceModel,
    SpaceMemberModel,
    SubscriptionModel,
    SpaceResourceAllocationModel,
    SpaceResourceUsageModel,
)
from formspace_core.db import DatabaseManager, db, get_session
from formspace_core.services import (
    AllocationService,
    AllocationSummary,
    AllocationEntry,
    AllocationUpdateResult,
    SpaceAllocation,
    UsageService,
    UserUsage,
    SpaceUsage,
    SpaceUsageWithLimits,
    QuotaService,
    LimitCheckResult,
    SubscriptionService,
    SubscriptionInfo,
)

__all__ = [
    # Version
    "__version__",
    # Models
    "Base",
    "Tier",
    "OverageMode",
    "SpaceRole",
    "SpaceModel",
    "SpaceMemberModel",
    "SubscriptionModel",
    "SpaceResourceAllocationModel",
    "SpaceResourceUsageModel",
    # Database
    "DatabaseManager",
    "db",
    "get_session",
    # Services
    "AllocationService",
    "AllocationSummary",
    "AllocationEntry",
    "AllocationUpdateResult",
    "SpaceAllocation",
    "UsageService",
    "UserUsage",
    "SpaceUsage",
    "SpaceUsageWithLimits",
    "QuotaService",
    "LimitCheckResult",
    "SubscriptionService",
    "SubscriptionInfo",
]
