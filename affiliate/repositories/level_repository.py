"""
Level repository.

Data access layer for the level ladder.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate.models.level import Level
from affiliate.repositories.base import BaseRepository


class LevelRepository(BaseRepository[Level]):
    """Level repository with ladder queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize level repository."""
        super().__init__(Level, session)

    async def get_by_order(self, order: int) -> Level | None:
        """
        Get level by ladder position.

        Args:
            order: Ladder position

        Returns:
            Level or None
        """
        return await self.get_by(order=order)

    async def get_ordered(self) -> list[Level]:
        """
        Get all levels in ladder order.

        Returns:
            List of levels, lowest order first
        """
        stmt = select(Level).order_by(Level.order)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
