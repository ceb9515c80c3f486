"""
Core models: Spaces and space memberships.

A space is the tenant-scoped workspace that holds forms and members, and the
unit across which a user's subscription quota is allocated.
"""

from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from formspace_core.models.base import Base, SpaceRole

if TYPE_CHECKING:
    from formspace_core.models.usage import (
        SpaceResourceAllocationModel,
        SpaceResourceUsageModel,
    )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SpaceModel(Base):
    """
    Space table for multi-tenancy.

    Users join spaces through SpaceMemberModel; the creator is recorded
    for ownership checks.
    """

    __tablename__ = "spaces"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    is_paused: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utc_now,
        onupdate=_utc_now,
        nullable=False,
    )

    # Relationships
    members: Mapped[List["SpaceMemberModel"]] = relationship(
        back_populates="space", cascade="all, delete-orphan", passive_deletes=True
    )
    allocations: Mapped[List["SpaceResourceAllocationModel"]] = relationship(
        back_populates="space", cascade="all, delete-orphan", passive_deletes=True
    )
    usage: Mapped[Optional["SpaceResourceUsageModel"]] = relationship(
        back_populates="space", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("idx_spaces_created_by", "created_by"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "created_by": self.created_by,
            "is_paused": self.is_paused,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class SpaceMemberModel(Base):
    """
    Space membership.

    Membership order (created_at, then id) is the order auto-split uses
    to hand out the remainder percentage.
    """

    __tablename__ = "space_members"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    space_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("spaces.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), default=SpaceRole.MEMBER.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, nullable=False
    )

    # Relationships
    space: Mapped["SpaceModel"] = relationship(back_populates="members")

    __table_args__ = (
        UniqueConstraint("space_id", "user_id", name="uq_space_members_space_user"),
        Index("idx_space_members_user_created", "user_id", "created_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "space_id": self.space_id,
            "user_id": self.user_id,
            "role": self.role,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
