"""
User repository.

Data access layer for User model, including the adjacency queries used by
subtree traversal.
"""

from collections import defaultdict
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate.models.referral import Referral
from affiliate.models.user import User
from affiliate.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """User repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize user repository."""
        super().__init__(User, session)

    async def get_active_ids(self) -> list[int]:
        """
        Get IDs of active users that already hold a level.

        Returns:
            User IDs in ascending order
        """
        stmt = (
            select(User.id)
            .where(User.is_active.is_(True), User.level_id.is_not(None))
            .order_by(User.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_children_of_many(
        self, referrer_ids: list[int], active_only: bool = True
    ) -> dict[int, list[User]]:
        """
        Get direct referrals of many referrers in one adjacency query.

        Args:
            referrer_ids: Referrer user IDs
            active_only: Skip inactive users

        Returns:
            Dict mapping referrer ID to its children in referral order
        """
        if not referrer_ids:
            return {}

        stmt = (
            select(Referral.referrer_id, User)
            .join(User, User.id == Referral.referred_id)
            .where(Referral.referrer_id.in_(referrer_ids))
            .order_by(Referral.referrer_id, Referral.created_at, Referral.id)
        )
        if active_only:
            stmt = stmt.where(User.is_active.is_(True))

        result = await self.session.execute(stmt)

        children: dict[int, list[User]] = defaultdict(list)
        for referrer_id, user in result.all():
            children[referrer_id].append(user)
        return dict(children)

    async def count_children_of_many(
        self, referrer_ids: list[int], active_only: bool = True
    ) -> dict[int, int]:
        """
        Count direct referrals of many referrers with GROUP BY.

        Args:
            referrer_ids: Referrer user IDs
            active_only: Count only active users

        Returns:
            Dict mapping referrer ID to count (0 included)
        """
        counts = {referrer_id: 0 for referrer_id in referrer_ids}
        if not referrer_ids:
            return counts

        stmt = (
            select(Referral.referrer_id, func.count(Referral.id).label("count"))
            .join(User, User.id == Referral.referred_id)
            .where(Referral.referrer_id.in_(referrer_ids))
            .group_by(Referral.referrer_id)
        )
        if active_only:
            stmt = stmt.where(User.is_active.is_(True))

        result = await self.session.execute(stmt)
        for row in result.all():
            counts[row.referrer_id] = row.count
        return counts

    async def increment_fields(
        self, user_ids: list[int], **deltas: Any
    ) -> None:
        """
        Add deltas to numeric columns with a single UPDATE.

        The increment happens in SQL so concurrent writers never lose
        updates, without locking the rows first.

        Args:
            user_ids: User IDs to update
            **deltas: Attribute name to increment (e.g. total_earnings=...)
        """
        if not user_ids or not deltas:
            return

        values = {
            getattr(User, key): getattr(User, key) + delta
            for key, delta in deltas.items()
        }
        stmt = (
            update(User)
            .where(User.id.in_(user_ids))
            .values(values)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.execute(stmt)
