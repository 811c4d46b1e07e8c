"""
Referral repository.

Data access layer for Referral model.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from affiliate.models.referral import Referral
from affiliate.repositories.base import BaseRepository


class ReferralRepository(BaseRepository[Referral]):
    """Referral repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize referral repository."""
        super().__init__(Referral, session)

    async def get_by_referred(self, referred_id: int) -> Referral | None:
        """
        Get the edge pointing at a referred user.

        Args:
            referred_id: Referred user ID

        Returns:
            Referral or None
        """
        return await self.get_by(referred_id=referred_id)

    async def count_by_referrer(self, referrer_id: int) -> int:
        """
        Count edges created by a referrer.

        Args:
            referrer_id: Referrer user ID

        Returns:
            Count of referrals
        """
        return await self.count(referrer_id=referrer_id)
