"""
Quota engine settings from environment variables (prefix QUOTA_).
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class QuotaSettings(BaseSettings):
    """Tunables for allocation validation and billing-period rollover."""

    # Allowed deviation of a percentage total from 100
    ALLOCATION_SUM_TOLERANCE: float = Field(default=0.1)

    # Period length used when a subscription has an end date but no start date
    DEFAULT_BILLING_PERIOD_DAYS: int = Field(default=30)

    # Move the subscription's period window forward after a lazy rollover
    ADVANCE_PERIOD_ON_RESET: bool = Field(default=True)

    model_config = {
        "env_prefix": "QUOTA_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


def get_quota_settings() -> QuotaSettings:
    """Get quota settings (allows reloading from env)."""
    return QuotaSettings()
