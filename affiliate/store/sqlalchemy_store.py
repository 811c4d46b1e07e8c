"""
SQLAlchemy store.

Store implementation composed of repositories over one ``AsyncSession``.
One store instance serves one request; sessions are not shared between
concurrent tasks.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate.models import (
    CommissionPayout,
    Level,
    Promotion,
    Referral,
    User,
)
from affiliate.repositories import (
    CommissionPayoutRepository,
    LevelRepository,
    PromotionRepository,
    ReferralRepository,
    UserRepository,
)
from affiliate.store.base import Store
from affiliate.utils.exceptions import TransactionError


class SqlAlchemyStore(Store):
    """Store backed by PostgreSQL through async SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize store.

        Args:
            session: Async database session owned by the caller
        """
        self.session = session
        self.user_repo = UserRepository(session)
        self.level_repo = LevelRepository(session)
        self.referral_repo = ReferralRepository(session)
        self.promotion_repo = PromotionRepository(session)
        self.payout_repo = CommissionPayoutRepository(session)
        self._depth = 0

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """
        Run the block in a transaction.

        Nested blocks join the outer transaction; only the outermost block
        commits or rolls back. Storage failures are re-raised as
        ``TransactionError`` after rollback.
        """
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            yield
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._safe_rollback(e)
            raise TransactionError(f"Storage failure: {e}") from e
        except Exception as e:
            await self._safe_rollback(e)
            raise
        finally:
            self._depth = 0

    async def _safe_rollback(self, cause: Exception) -> None:
        try:
            await self.session.rollback()
            logger.info(
                f"Rollback performed due to error: {type(cause).__name__}"
            )
        except SQLAlchemyError as rollback_error:
            logger.error(
                f"Failed to rollback: {rollback_error}",
                exc_info=True,
            )

    # Users

    async def create_user(self, **data: Any) -> User:
        return await self.user_repo.create(**data)

    async def get_user(self, user_id: int, for_update: bool = False) -> User | None:
        if for_update:
            return await self.user_repo.get_for_update(user_id)
        return await self.user_repo.get_by_id(user_id)

    async def update_user(self, user: User, **changes: Any) -> User:
        return await self.user_repo.update(user, **changes)

    async def increment_user_fields(
        self, user_ids: list[int], **deltas: Any
    ) -> None:
        await self.user_repo.increment_fields(user_ids, **deltas)

    async def list_active_user_ids(self) -> list[int]:
        return await self.user_repo.get_active_ids()

    async def list_children_of_many(
        self, user_ids: list[int], active_only: bool = True
    ) -> dict[int, list[User]]:
        return await self.user_repo.get_children_of_many(user_ids, active_only)

    async def count_children_of_many(
        self, user_ids: list[int], active_only: bool = True
    ) -> dict[int, int]:
        return await self.user_repo.count_children_of_many(user_ids, active_only)

    # Levels

    async def create_level(self, **data: Any) -> Level:
        return await self.level_repo.create(**data)

    async def get_level(self, level_id: int) -> Level | None:
        return await self.level_repo.get_by_id(level_id)

    async def get_level_by_order(self, order: int) -> Level | None:
        return await self.level_repo.get_by_order(order)

    async def list_levels(self) -> list[Level]:
        return await self.level_repo.get_ordered()

    # Referral edges

    async def create_referral(self, **data: Any) -> Referral:
        return await self.referral_repo.create(**data)

    async def get_referral_by_referred(self, referred_id: int) -> Referral | None:
        return await self.referral_repo.get_by_referred(referred_id)

    async def update_referral(self, referral: Referral, **changes: Any) -> Referral:
        return await self.referral_repo.update(referral, **changes)

    async def count_referrals_by_referrer(self, referrer_id: int) -> int:
        return await self.referral_repo.count_by_referrer(referrer_id)

    # Promotions

    async def add_promotion(self, **data: Any) -> Promotion:
        return await self.promotion_repo.create(**data)

    async def list_promotions(self, user_id: int, limit: int = 5) -> list[Promotion]:
        return await self.promotion_repo.get_recent_by_user(user_id, limit)

    # Commission payouts

    async def get_payouts_by_payment(self, payment_id: str) -> list[CommissionPayout]:
        return await self.payout_repo.get_by_payment(payment_id)

    async def create_payout_if_absent(self, **data: Any) -> CommissionPayout | None:
        return await self.payout_repo.create_if_absent(**data)

    async def list_payouts_by_beneficiary(
        self, beneficiary_id: int, page: int = 1, per_page: int = 10
    ) -> tuple[list[CommissionPayout], int, Decimal]:
        return await self.payout_repo.get_by_beneficiary_paginated(
            beneficiary_id, page, per_page
        )

    async def list_payouts_between(
        self, start: datetime, end: datetime
    ) -> list[CommissionPayout]:
        return await self.payout_repo.find_created_between(start, end)
