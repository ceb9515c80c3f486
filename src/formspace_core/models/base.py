"""
Base model and common types for SQLAlchemy models.
"""

from enum import Enum as PyEnum

from sqlalchemy.orm import DeclarativeBase


class Tier(str, PyEnum):
    """Subscription tiers."""

    FREE = "free"
    PRO = "pro"
    BUSINESS = "business"


class OverageMode(str, PyEnum):
    """What happens when a space exceeds its allocated share."""

    PAUSE = "pause"
    AUTO_BILL = "auto_bill"


class SpaceRole(str, PyEnum):
    """Member roles within a space."""

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass
