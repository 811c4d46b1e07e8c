"""
Promotion repository.

Data access layer for Promotion model.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate.models.promotion import Promotion
from affiliate.repositories.base import BaseRepository


class PromotionRepository(BaseRepository[Promotion]):
    """Promotion history repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize promotion repository."""
        super().__init__(Promotion, session)

    async def get_recent_by_user(
        self, user_id: int, limit: int = 5
    ) -> list[Promotion]:
        """
        Get latest promotions of a user, newest first.

        Args:
            user_id: User ID
            limit: Max number of records

        Returns:
            List of promotions
        """
        stmt = (
            select(Promotion)
            .where(Promotion.user_id == user_id)
            .order_by(Promotion.created_at.desc(), Promotion.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
