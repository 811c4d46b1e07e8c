"""
CommissionPayout model.

One commission row per (source payment, beneficiary).
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from affiliate.models.base import Base
from affiliate.models.types import MoneyType, RateType


class CommissionPayout(Base):
    """
    CommissionPayout entity.

    Retried purchase-completion events hit the unique
    (payment_id, beneficiary_id) constraint instead of paying twice.

    Attributes:
        payment_id: External payment that triggered the distribution
        beneficiary_id: Ancestor receiving the commission
        buyer_id: User who made the purchase
        base_amount: Purchase amount
        rate_applied: Commission rate of the beneficiary's level at payout time
        amount: base_amount * rate_applied
        depth: Hops from buyer to beneficiary (1 = direct referrer)
        level_id: Beneficiary level at payout time
    """

    __tablename__ = "commission_payouts"
    __table_args__ = (
        UniqueConstraint(
            "payment_id", "beneficiary_id",
            name="uq_commission_payouts_payment_beneficiary"
        ),
        CheckConstraint('depth >= 1', name='check_payout_depth_positive'),
        CheckConstraint('amount >= 0', name='check_payout_amount_non_negative'),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    payment_id: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True
    )
    beneficiary_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    buyer_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    level_id: Mapped[int | None] = mapped_column(
        ForeignKey("levels.id", ondelete="RESTRICT"),
        nullable=True,
    )

    base_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    rate_applied: Mapped[Decimal] = mapped_column(RateType, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    depth: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CommissionPayout(id={self.id}, payment_id={self.payment_id!r}, "
            f"beneficiary_id={self.beneficiary_id}, amount={self.amount}, "
            f"depth={self.depth})>"
        )
