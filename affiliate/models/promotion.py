"""
Promotion model.

Append-only history of level transitions.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from affiliate.models.base import Base


class Promotion(Base):
    """
    Promotion entity.

    Attributes:
        user_id: Promoted user
        from_level_id: Previous level, null only for the initial assignment
        to_level_id: New level, always exactly one order above the previous
        reason: "automatic promotion", "administrative override" or
            "initial assignment"
        snapshot: Evaluation at promotion time (direct_referrals,
            valid_structure_count, forced)
    """

    __tablename__ = "promotions"
    __table_args__ = (
        Index("idx_promotions_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_level_id: Mapped[int | None] = mapped_column(
        ForeignKey("levels.id", ondelete="RESTRICT"),
        nullable=True,
    )
    to_level_id: Mapped[int] = mapped_column(
        ForeignKey("levels.id", ondelete="RESTRICT"),
        nullable=False,
    )

    reason: Mapped[str] = mapped_column(String(100), nullable=False)
    snapshot: Mapped[dict[str, Any]] = mapped_column(
        "snapshot_json", JSON, nullable=False, default=dict
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Promotion(id={self.id}, user_id={self.user_id}, "
            f"from={self.from_level_id}, to={self.to_level_id}, "
            f"reason={self.reason!r})>"
        )
