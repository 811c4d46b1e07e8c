"""
Commission payout repository.

Data access layer for CommissionPayout model.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate.models.commission_payout import CommissionPayout
from affiliate.repositories.base import BaseRepository


class CommissionPayoutRepository(BaseRepository[CommissionPayout]):
    """Commission payout repository with idempotent insertion."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission payout repository."""
        super().__init__(CommissionPayout, session)

    async def get_by_payment(self, payment_id: str) -> list[CommissionPayout]:
        """
        Get payouts produced by one payment, nearest ancestor first.

        Args:
            payment_id: Source payment ID

        Returns:
            List of payouts
        """
        stmt = (
            select(CommissionPayout)
            .where(CommissionPayout.payment_id == payment_id)
            .order_by(CommissionPayout.depth)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create_if_absent(self, **data: Any) -> CommissionPayout | None:
        """
        Insert a payout unless (payment_id, beneficiary_id) already exists.

        Uses INSERT ... ON CONFLICT DO NOTHING so concurrent retries of the
        same payment cannot pay a beneficiary twice.

        Args:
            **data: Payout data

        Returns:
            Created payout or None if it already existed
        """
        stmt = (
            insert(CommissionPayout)
            .values(**data)
            .on_conflict_do_nothing(
                constraint="uq_commission_payouts_payment_beneficiary"
            )
            .returning(CommissionPayout)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_beneficiary_paginated(
        self, beneficiary_id: int, page: int = 1, per_page: int = 10
    ) -> tuple[list[CommissionPayout], int, Decimal]:
        """
        Get payouts of a beneficiary with pagination, newest first.

        Args:
            beneficiary_id: Beneficiary user ID
            page: Page number (1-indexed)
            per_page: Items per page

        Returns:
            Tuple of (items, total_count, total_amount)
        """
        stats_stmt = select(
            func.count(CommissionPayout.id).label("total"),
            func.coalesce(
                func.sum(CommissionPayout.amount), Decimal("0")
            ).label("total_amount"),
        ).where(CommissionPayout.beneficiary_id == beneficiary_id)
        stats = (await self.session.execute(stats_stmt)).one()

        offset = (page - 1) * per_page
        stmt = (
            select(CommissionPayout)
            .where(CommissionPayout.beneficiary_id == beneficiary_id)
            .order_by(CommissionPayout.created_at.desc(), CommissionPayout.id.desc())
            .offset(offset)
            .limit(per_page)
        )
        result = await self.session.execute(stmt)
        items = list(result.scalars().all())

        return items, stats.total or 0, stats.total_amount or Decimal("0")

    async def find_created_between(
        self, start: datetime, end: datetime
    ) -> list[CommissionPayout]:
        """
        Get payouts created inside a time window (inclusive).

        Args:
            start: Window start
            end: Window end

        Returns:
            List of payouts
        """
        stmt = (
            select(CommissionPayout)
            .where(
                CommissionPayout.created_at >= start,
                CommissionPayout.created_at <= end,
            )
            .order_by(CommissionPayout.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
