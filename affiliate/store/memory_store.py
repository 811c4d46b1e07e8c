"""
In-memory store.

Process-local implementation of the store interface for tests and tooling.
Rows are plain (transient) model instances; an adjacency index keyed by
referrer keeps children in referral order. Transactions keep an undo log
and per-user ``asyncio.Lock`` objects stand in for row locks.
"""

import asyncio
import itertools
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from affiliate.models import (
    CommissionPayout,
    Level,
    Promotion,
    Referral,
    ReferralStatus,
    User,
)
from affiliate.store.base import Store
from affiliate.utils.exceptions import TransactionError


@dataclass
class _MemoryTransaction:
    """Undo log and row locks held by one open transaction."""

    undo: list[Callable[[], None]] = field(default_factory=list)
    locks: dict[int, asyncio.Lock] = field(default_factory=dict)


class InMemoryStore(Store):
    """Store keeping every table in dictionaries."""

    def __init__(self) -> None:
        self.users: dict[int, User] = {}
        self.levels: dict[int, Level] = {}
        self.referrals: dict[int, Referral] = {}
        self.promotions: dict[int, Promotion] = {}
        self.payouts: dict[tuple[str, int], CommissionPayout] = {}

        # referrer_id -> referred ids in referral order
        self._children: dict[int, list[int]] = defaultdict(list)
        self._edge_by_referred: dict[int, int] = {}

        self._ids = {
            name: itertools.count(1)
            for name in ("users", "levels", "referrals", "promotions", "payouts")
        }
        self._row_locks: dict[int, asyncio.Lock] = {}
        self._tx: ContextVar[_MemoryTransaction | None] = ContextVar(
            f"memory_store_tx_{id(self)}", default=None
        )

    @staticmethod
    async def _checkpoint() -> None:
        # Yield to the loop like a real round-trip would
        await asyncio.sleep(0)

    def _record_undo(self, action: Callable[[], None]) -> None:
        tx = self._tx.get()
        if tx is not None:
            tx.undo.append(action)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """
        Run the block in a transaction.

        Nested blocks join the outer transaction. On error every write of the
        transaction is undone in reverse order; row locks are released when
        the outermost block exits.
        """
        if self._tx.get() is not None:
            yield
            return

        tx = _MemoryTransaction()
        token = self._tx.set(tx)
        try:
            yield
        except Exception:
            for action in reversed(tx.undo):
                action()
            raise
        finally:
            self._tx.reset(token)
            for lock in tx.locks.values():
                lock.release()

    async def _lock_row(self, user_id: int) -> None:
        tx = self._tx.get()
        if tx is None:
            raise TransactionError("Row locks require an open transaction")
        if user_id in tx.locks:
            return
        lock = self._row_locks.setdefault(user_id, asyncio.Lock())
        await lock.acquire()
        tx.locks[user_id] = lock

    def _apply_changes(self, entity: Any, changes: dict[str, Any]) -> None:
        previous = {key: getattr(entity, key) for key in changes}
        for key, value in changes.items():
            setattr(entity, key, value)

        def restore() -> None:
            for key, value in previous.items():
                setattr(entity, key, value)

        self._record_undo(restore)

    def _insert(self, table: dict, key: Any, entity: Any) -> None:
        table[key] = entity
        self._record_undo(lambda: table.pop(key, None))

    # Users

    async def create_user(self, **data: Any) -> User:
        await self._checkpoint()
        now = datetime.now(UTC)
        data.setdefault("level_id", None)
        data.setdefault("referred_by", None)
        data.setdefault("is_active", True)
        data.setdefault("direct_referrals_count", 0)
        data.setdefault("indirect_referrals_count", 0)
        data.setdefault("total_earnings", Decimal("0"))
        data.setdefault("version", 1)
        data.setdefault("email", None)
        data.setdefault("created_at", now)
        data.setdefault("updated_at", now)
        user = User(id=next(self._ids["users"]), **data)
        self._insert(self.users, user.id, user)
        return user

    async def get_user(self, user_id: int, for_update: bool = False) -> User | None:
        await self._checkpoint()
        if for_update and user_id in self.users:
            await self._lock_row(user_id)
        return self.users.get(user_id)

    async def update_user(self, user: User, **changes: Any) -> User:
        await self._checkpoint()
        changes.setdefault("updated_at", datetime.now(UTC))
        self._apply_changes(user, changes)
        return user

    async def increment_user_fields(
        self, user_ids: list[int], **deltas: Any
    ) -> None:
        await self._checkpoint()
        for user_id in user_ids:
            user = self.users.get(user_id)
            if user is None:
                continue
            self._apply_changes(
                user,
                {key: getattr(user, key) + delta for key, delta in deltas.items()},
            )

    async def list_active_user_ids(self) -> list[int]:
        await self._checkpoint()
        return sorted(
            user.id for user in self.users.values()
            if user.is_active and user.level_id is not None
        )

    async def list_children_of_many(
        self, user_ids: list[int], active_only: bool = True
    ) -> dict[int, list[User]]:
        await self._checkpoint()
        result: dict[int, list[User]] = {}
        for user_id in user_ids:
            children = [self.users[cid] for cid in self._children.get(user_id, [])]
            if active_only:
                children = [child for child in children if child.is_active]
            if children:
                result[user_id] = children
        return result

    async def count_children_of_many(
        self, user_ids: list[int], active_only: bool = True
    ) -> dict[int, int]:
        children = await self.list_children_of_many(user_ids, active_only)
        return {user_id: len(children.get(user_id, [])) for user_id in user_ids}

    # Levels

    async def create_level(self, **data: Any) -> Level:
        await self._checkpoint()
        if any(level.order == data.get("order") for level in self.levels.values()):
            raise TransactionError(f"Level order {data.get('order')} already exists")
        data.setdefault("min_direct_referrals", 0)
        data.setdefault("min_indirect_referrals", 0)
        data.setdefault("color", "#000000")
        data.setdefault("icon", None)
        data.setdefault("requirements_description", None)
        data.setdefault("created_at", datetime.now(UTC))
        level = Level(id=next(self._ids["levels"]), **data)
        self._insert(self.levels, level.id, level)
        return level

    async def get_level(self, level_id: int) -> Level | None:
        await self._checkpoint()
        return self.levels.get(level_id)

    async def get_level_by_order(self, order: int) -> Level | None:
        await self._checkpoint()
        for level in self.levels.values():
            if level.order == order:
                return level
        return None

    async def list_levels(self) -> list[Level]:
        await self._checkpoint()
        return sorted(self.levels.values(), key=lambda level: level.order)

    # Referral edges

    async def create_referral(self, **data: Any) -> Referral:
        await self._checkpoint()
        referrer_id = data["referrer_id"]
        referred_id = data["referred_id"]
        if referred_id in self._edge_by_referred:
            raise TransactionError(
                f"Referred user {referred_id} already has a referral edge"
            )

        now = datetime.now(UTC)
        data.setdefault("level_in_chain", 1)
        data.setdefault("commission", Decimal("0"))
        data.setdefault("status", ReferralStatus.APPROVED.value)
        data.setdefault("created_at", now)
        data.setdefault("updated_at", now)
        referral = Referral(id=next(self._ids["referrals"]), **data)

        self._insert(self.referrals, referral.id, referral)
        self._edge_by_referred[referred_id] = referral.id
        self._children[referrer_id].append(referred_id)

        def unlink() -> None:
            self._edge_by_referred.pop(referred_id, None)
            if referred_id in self._children[referrer_id]:
                self._children[referrer_id].remove(referred_id)

        self._record_undo(unlink)
        return referral

    async def get_referral_by_referred(self, referred_id: int) -> Referral | None:
        await self._checkpoint()
        referral_id = self._edge_by_referred.get(referred_id)
        return self.referrals.get(referral_id) if referral_id else None

    async def update_referral(self, referral: Referral, **changes: Any) -> Referral:
        await self._checkpoint()
        changes.setdefault("updated_at", datetime.now(UTC))
        self._apply_changes(referral, changes)
        return referral

    async def count_referrals_by_referrer(self, referrer_id: int) -> int:
        await self._checkpoint()
        return len(self._children.get(referrer_id, []))

    # Promotions

    async def add_promotion(self, **data: Any) -> Promotion:
        await self._checkpoint()
        data.setdefault("snapshot", {})
        data.setdefault("created_at", datetime.now(UTC))
        promotion = Promotion(id=next(self._ids["promotions"]), **data)
        self._insert(self.promotions, promotion.id, promotion)
        return promotion

    async def list_promotions(self, user_id: int, limit: int = 5) -> list[Promotion]:
        await self._checkpoint()
        records = [p for p in self.promotions.values() if p.user_id == user_id]
        records.sort(key=lambda p: (p.created_at, p.id), reverse=True)
        return records[:limit]

    # Commission payouts

    async def get_payouts_by_payment(self, payment_id: str) -> list[CommissionPayout]:
        await self._checkpoint()
        payouts = [p for p in self.payouts.values() if p.payment_id == payment_id]
        return sorted(payouts, key=lambda p: p.depth)

    async def create_payout_if_absent(self, **data: Any) -> CommissionPayout | None:
        await self._checkpoint()
        key = (data["payment_id"], data["beneficiary_id"])
        if key in self.payouts:
            return None
        data.setdefault("created_at", datetime.now(UTC))
        payout = CommissionPayout(id=next(self._ids["payouts"]), **data)
        self._insert(self.payouts, key, payout)
        return payout

    async def list_payouts_by_beneficiary(
        self, beneficiary_id: int, page: int = 1, per_page: int = 10
    ) -> tuple[list[CommissionPayout], int, Decimal]:
        await self._checkpoint()
        payouts = [
            p for p in self.payouts.values() if p.beneficiary_id == beneficiary_id
        ]
        payouts.sort(key=lambda p: (p.created_at, p.id), reverse=True)
        total_amount = sum((p.amount for p in payouts), Decimal("0"))
        offset = (page - 1) * per_page
        return payouts[offset:offset + per_page], len(payouts), total_amount

    async def list_payouts_between(
        self, start: datetime, end: datetime
    ) -> list[CommissionPayout]:
        await self._checkpoint()
        payouts = [p for p in self.payouts.values() if start <= p.created_at <= end]
        return sorted(payouts, key=lambda p: p.created_at)
