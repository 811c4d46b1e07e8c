"""
User model.

Represents an affiliate in the referral forest.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from affiliate.models.base import Base
from affiliate.models.types import MoneyType


class User(Base):
    """User model - affiliates and their cached referral counters."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            'referred_by IS NULL OR referred_by <> id',
            name='check_user_not_self_referred'
        ),
        CheckConstraint(
            'direct_count >= 0', name='check_user_direct_count_non_negative'
        ),
        CheckConstraint(
            'indirect_count >= 0',
            name='check_user_indirect_count_non_negative'
        ),
        CheckConstraint(
            'total_earnings >= 0',
            name='check_user_total_earnings_non_negative'
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    # Profile
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True, index=True
    )

    # Ladder position (null only before the first assignment)
    level_id: Mapped[int | None] = mapped_column(
        ForeignKey("levels.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    # Referral parent, set at most once
    referred_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    # Cached counters
    direct_referrals_count: Mapped[int] = mapped_column(
        "direct_count", Integer, default=0, nullable=False
    )
    indirect_referrals_count: Mapped[int] = mapped_column(
        "indirect_count", Integer, default=0, nullable=False
    )

    total_earnings: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    # Optimistic concurrency counter, bumped on every level change
    version: Mapped[int] = mapped_column(
        Integer, default=1, nullable=False
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<User(id={self.id}, name={self.name!r}, "
            f"level_id={self.level_id}, referred_by={self.referred_by})>"
        )

    @property
    def display_name(self) -> str:
        """Name used in requirement messages."""
        return self.name or f"user {self.id}"
