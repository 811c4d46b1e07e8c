"""
Referral model.

Represents the edge between a referrer and the user they referred.
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from affiliate.models.base import Base
from affiliate.models.types import MoneyType


class ReferralStatus(str, Enum):
    """Referral edge status."""

    APPROVED = "approved"


class Referral(Base):
    """Referral model - one edge of the referral forest."""

    __tablename__ = "referrals"
    __table_args__ = (
        CheckConstraint(
            'referrer_id <> referred_id', name='check_referral_not_self'
        ),
        # Adjacency index: children of a referrer in creation order
        Index("idx_referrals_referrer_created", "referrer_id", "created_at"),
    )

    # Primary key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Referrer (who invited)
    referrer_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Referred (who was invited), a user has a single parent
    referred_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )

    # Depth of the referred user in its tree at creation time
    level_in_chain: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1
    )

    # Commission earned from purchases of the referred user
    commission: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReferralStatus.APPROVED.value
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Referral(id={self.id}, referrer_id={self.referrer_id}, "
            f"referred_id={self.referred_id}, status={self.status})>"
        )
