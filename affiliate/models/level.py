"""
Level model.

One rung of the promotion ladder.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from affiliate.models.base import Base
from affiliate.models.types import RateType


class Level(Base):
    """
    Level entity.

    Levels form a total order by ``order``. Only ``order`` and
    ``commission_rate`` matter to the engine; name, color, icon and
    description are display metadata.

    Attributes:
        id: Primary key
        order: Ladder position, unique, starts at 1
        commission_rate: Fraction of a purchase paid to the holder (0-1)
        min_direct_referrals: Informational requirement
        min_indirect_referrals: Informational requirement
    """

    __tablename__ = "levels"
    __table_args__ = (
        CheckConstraint('"order" >= 1', name='check_level_order_positive'),
        CheckConstraint(
            'commission_rate >= 0 AND commission_rate <= 1',
            name='check_level_commission_rate_range'
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    order: Mapped[int] = mapped_column(
        Integer, nullable=False, unique=True, index=True
    )
    commission_rate: Mapped[Decimal] = mapped_column(
        RateType, nullable=False
    )
    min_direct_referrals: Mapped[int] = mapped_column(
        "min_direct", Integer, default=0, nullable=False
    )
    min_indirect_referrals: Mapped[int] = mapped_column(
        "min_indirect", Integer, default=0, nullable=False
    )

    # Display metadata
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(20), default="#000000", nullable=False)
    icon: Mapped[str | None] = mapped_column(String(20), nullable=True)
    requirements_description: Mapped[str | None] = mapped_column(
        Text, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Level(id={self.id}, order={self.order}, "
            f"name={self.name!r}, rate={self.commission_rate})>"
        )
