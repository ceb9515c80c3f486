"""
Pricing tiers, limits and overage constants.

-1 in a limit means unlimited.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from formspace_core.exceptions import InvalidTierError
from formspace_core.models.base import Tier

UNLIMITED = -1


@dataclass(frozen=True)
class TierLimits:
    """Limits and feature flags for one subscription tier."""

    # Core limits
    max_spaces: int
    max_forms_per_space: int
    max_users_per_space: int
    max_submissions_per_month: int
    max_storage_mb: int
    max_notification_emails: int

    # Retention
    retention_days: int
    max_retention_days: int
    can_configure_retention: bool

    # Overage and allocation
    can_set_overage_mode: bool
    can_allocate_resources: bool

    # Features
    has_webhooks: bool
    has_api_access: bool
    has_custom_email_templates: bool
    has_advanced_spam_protection: bool
    has_file_virus_scanning: bool
    has_bulk_operations: bool
    has_advanced_search_filters: bool
    can_remove_powered_by_badge: bool

    api_access_level: Optional[str] = None  # read-only, full


TIER_LIMITS: Dict[Tier, TierLimits] = {
    Tier.FREE: TierLimits(
        max_spaces=1,
        max_forms_per_space=3,
        max_users_per_space=5,
        max_submissions_per_month=100,
        max_storage_mb=100,
        max_notification_emails=2,
        retention_days=30,
        max_retention_days=30,
        can_configure_retention=False,
        can_set_overage_mode=False,
        can_allocate_resources=False,
        has_webhooks=False,
        has_api_access=False,
        has_custom_email_templates=False,
        has_advanced_spam_protection=False,
        has_file_virus_scanning=False,
        has_bulk_operations=False,
        has_advanced_search_filters=False,
        can_remove_powered_by_badge=False,
    ),
    Tier.PRO: TierLimits(
        max_spaces=25,
        max_forms_per_space=UNLIMITED,
        max_users_per_space=50,
        max_submissions_per_month=5000,
        max_storage_mb=10240,  # 10GB
        max_notification_emails=5,
        retention_days=365,
        max_retention_days=365,
        can_configure_retention=True,
        can_set_overage_mode=True,
        can_allocate_resources=True,
        has_webhooks=True,
        has_api_access=True,
        has_custom_email_templates=True,
        has_advanced_spam_protection=True,
        has_file_virus_scanning=True,
        has_bulk_operations=True,
        has_advanced_search_filters=True,
        can_remove_powered_by_badge=False,
        api_access_level="read-only",
    ),
    Tier.BUSINESS: TierLimits(
        max_spaces=100,
        max_forms_per_space=UNLIMITED,
        max_users_per_space=UNLIMITED,
        max_submissions_per_month=50000,
        max_storage_mb=51200,  # 50GB
        max_notification_emails=10,
        retention_days=365,
        max_retention_days=1095,
        can_configure_retention=True,
        can_set_overage_mode=True,
        can_allocate_resources=True,
        has_webhooks=True,
        has_api_access=True,
        has_custom_email_templates=True,
        has_advanced_spam_protection=True,
        has_file_virus_scanning=True,
        has_bulk_operations=True,
        has_advanced_search_filters=True,
        can_remove_powered_by_badge=True,
        api_access_level="full",
    ),
}

# Overage pricing in USD, display only
OVERAGE_PRICE_PER_1000_SUBMISSIONS = 10
OVERAGE_PRICE_PER_5GB_STORAGE = 5

# Display pricing in USD
TIER_PRICING = {
    Tier.FREE: {"monthly": 0, "annual": 0},
    Tier.PRO: {"monthly": 29, "annual": 278},
    Tier.BUSINESS: {"monthly": 79, "annual": 758},
}


def parse_tier(tier: str) -> Tier:
    """Resolve a tier name, raising InvalidTierError for unknown names."""
    try:
        return Tier(tier)
    except ValueError:
        raise InvalidTierError(str(tier)) from None


def get_tier_limits(tier: str) -> TierLimits:
    """Get limits for a specific tier."""
    return TIER_LIMITS[parse_tier(tier)]
