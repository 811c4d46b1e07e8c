"""
Store interface.

Persistence seam injected into every engine component. Production code uses
``SqlAlchemyStore``; tests and tooling can use ``InMemoryStore``.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from decimal import Decimal
from typing import Any

from affiliate.models import (
    CommissionPayout,
    Level,
    Promotion,
    Referral,
    User,
)


class Store(ABC):
    """
    Repository facade used by the engine.

    Mutating calls must happen inside ``transaction()``. ``get_user`` with
    ``for_update=True`` locks the user row until the transaction ends; the
    lock is the per-user unit of mutual exclusion.
    """

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Open a transaction: commit on success, roll back on error."""

    # Users

    @abstractmethod
    async def create_user(self, **data: Any) -> User:
        """Create a user."""

    @abstractmethod
    async def get_user(self, user_id: int, for_update: bool = False) -> User | None:
        """Get user by ID, optionally locking the row."""

    @abstractmethod
    async def update_user(self, user: User, **changes: Any) -> User:
        """Apply changes to a user."""

    @abstractmethod
    async def increment_user_fields(
        self, user_ids: list[int], **deltas: Any
    ) -> None:
        """Atomically add deltas to numeric user columns."""

    @abstractmethod
    async def list_children_of_many(
        self, user_ids: list[int], active_only: bool = True
    ) -> dict[int, list[User]]:
        """Direct referrals per user, earliest referral first."""

    @abstractmethod
    async def count_children_of_many(
        self, user_ids: list[int], active_only: bool = True
    ) -> dict[int, int]:
        """Direct referral counts per user (zero included)."""

    @abstractmethod
    async def list_active_user_ids(self) -> list[int]:
        """IDs of active users holding a level, ascending."""

    async def list_children(
        self, user_id: int, active_only: bool = True
    ) -> list[User]:
        """Direct referrals of one user, earliest referral first."""
        children = await self.list_children_of_many([user_id], active_only)
        return children.get(user_id, [])

    # Levels

    @abstractmethod
    async def create_level(self, **data: Any) -> Level:
        """Create a level."""

    @abstractmethod
    async def get_level(self, level_id: int) -> Level | None:
        """Get level by ID."""

    @abstractmethod
    async def get_level_by_order(self, order: int) -> Level | None:
        """Get level by ladder position."""

    @abstractmethod
    async def list_levels(self) -> list[Level]:
        """All levels, lowest order first."""

    # Referral edges

    @abstractmethod
    async def create_referral(self, **data: Any) -> Referral:
        """Create a referral edge."""

    @abstractmethod
    async def get_referral_by_referred(self, referred_id: int) -> Referral | None:
        """Edge pointing at the referred user."""

    @abstractmethod
    async def update_referral(self, referral: Referral, **changes: Any) -> Referral:
        """Apply changes to a referral edge."""

    @abstractmethod
    async def count_referrals_by_referrer(self, referrer_id: int) -> int:
        """Number of edges created by a referrer."""

    # Promotions

    @abstractmethod
    async def add_promotion(self, **data: Any) -> Promotion:
        """Append a promotion record."""

    @abstractmethod
    async def list_promotions(self, user_id: int, limit: int = 5) -> list[Promotion]:
        """Latest promotion records, newest first."""

    # Commission payouts

    @abstractmethod
    async def get_payouts_by_payment(self, payment_id: str) -> list[CommissionPayout]:
        """Payouts of one payment, nearest ancestor first."""

    @abstractmethod
    async def create_payout_if_absent(self, **data: Any) -> CommissionPayout | None:
        """Insert a payout; None if (payment_id, beneficiary_id) exists."""

    @abstractmethod
    async def list_payouts_by_beneficiary(
        self, beneficiary_id: int, page: int = 1, per_page: int = 10
    ) -> tuple[list[CommissionPayout], int, Decimal]:
        """Paginated payouts of a beneficiary, newest first, with totals."""

    @abstractmethod
    async def list_payouts_between(
        self, start: datetime, end: datetime
    ) -> list[CommissionPayout]:
        """Payouts created inside a time window."""
