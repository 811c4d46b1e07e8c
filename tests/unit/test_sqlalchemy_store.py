"""
Tests for the SQLAlchemy store and repositories.

Tests cover:
- Transaction commit, rollback and error wrapping
- Row locking statements
- Adjacency queries grouping
- Idempotent payout insertion and pagination

All tests use a mocked AsyncSession; no database is required.
"""

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError

from affiliate.models import User
from affiliate.repositories import CommissionPayoutRepository, UserRepository
from affiliate.store import SqlAlchemyStore
from affiliate.utils.exceptions import TransactionError


def _statement_sql(session) -> str:
    stmt = session.execute.call_args.args[0]
    return str(stmt.compile(dialect=postgresql.dialect()))


class TestTransaction:
    """Test transaction boundaries."""

    @pytest.mark.asyncio
    async def test_commit_on_success(self, mock_session):
        store = SqlAlchemyStore(mock_session)

        async with store.transaction():
            pass

        mock_session.commit.assert_awaited_once()
        mock_session.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_nested_commits_once(self, mock_session):
        store = SqlAlchemyStore(mock_session)

        async with store.transaction():
            async with store.transaction():
                pass
            mock_session.commit.assert_not_awaited()

        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_storage_error_wrapped(self, mock_session):
        store = SqlAlchemyStore(mock_session)

        with pytest.raises(TransactionError):
            async with store.transaction():
                raise IntegrityError("INSERT", {}, Exception("duplicate"))

        mock_session.rollback.assert_awaited_once()
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, mock_session):
        store = SqlAlchemyStore(mock_session)

        with pytest.raises(ValueError):
            async with store.transaction():
                raise ValueError("bad input")

        mock_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_commit_failure_rolls_back(self, mock_session):
        mock_session.commit.side_effect = IntegrityError("COMMIT", {}, Exception("conflict"))
        store = SqlAlchemyStore(mock_session)

        with pytest.raises(TransactionError):
            async with store.transaction():
                pass

        mock_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_new_transaction_after_failure(self, mock_session):
        store = SqlAlchemyStore(mock_session)
        with pytest.raises(ValueError):
            async with store.transaction():
                raise ValueError("first")

        async with store.transaction():
            pass

        mock_session.commit.assert_awaited_once()


class TestUserQueries:
    """Test user lookups and adjacency queries."""

    @pytest.mark.asyncio
    async def test_get_user_for_update_locks_row(self, mock_session):
        user = User(id=1, name="root")
        result = MagicMock()
        result.scalar_one_or_none.return_value = user
        mock_session.execute.return_value = result
        store = SqlAlchemyStore(mock_session)

        assert await store.get_user(1, for_update=True) is user
        assert "FOR UPDATE" in _statement_sql(mock_session)

    @pytest.mark.asyncio
    async def test_get_user_plain_uses_identity_map(self, mock_session):
        user = User(id=1, name="root")
        mock_session.get.return_value = user
        store = SqlAlchemyStore(mock_session)

        assert await store.get_user(1) is user
        mock_session.get.assert_awaited_once_with(User, 1)
        mock_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_children_grouped_by_referrer(self, mock_session):
        a, b, c = User(id=2, name="a"), User(id=3, name="b"), User(id=4, name="c")
        result = MagicMock()
        result.all.return_value = [(1, a), (1, b), (2, c)]
        mock_session.execute.return_value = result
        repo = UserRepository(mock_session)

        children = await repo.get_children_of_many([1, 2])

        assert children == {1: [a, b], 2: [c]}
        sql = _statement_sql(mock_session)
        assert "ORDER BY referrals.referrer_id, referrals.created_at, referrals.id" in sql
        assert "is_active IS true" in sql

    @pytest.mark.asyncio
    async def test_children_of_nobody(self, mock_session):
        repo = UserRepository(mock_session)

        assert await repo.get_children_of_many([]) == {}
        mock_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_counts_include_zero(self, mock_session):
        result = MagicMock()
        result.all.return_value = [SimpleNamespace(referrer_id=1, count=3)]
        mock_session.execute.return_value = result
        repo = UserRepository(mock_session)

        counts = await repo.count_children_of_many([1, 2])

        assert counts == {1: 3, 2: 0}
        assert "GROUP BY referrals.referrer_id" in _statement_sql(mock_session)

    @pytest.mark.asyncio
    async def test_increment_is_single_update(self, mock_session):
        repo = UserRepository(mock_session)

        await repo.increment_fields([1, 2], indirect_referrals_count=1)

        mock_session.execute.assert_awaited_once()
        sql = _statement_sql(mock_session)
        assert sql.startswith("UPDATE users SET")
        assert "users.indirect_count +" in sql

    @pytest.mark.asyncio
    async def test_increment_nothing(self, mock_session):
        repo = UserRepository(mock_session)

        await repo.increment_fields([], total_earnings=Decimal("1"))

        mock_session.execute.assert_not_awaited()


class TestPayoutQueries:
    """Test commission payout persistence."""

    @pytest.mark.asyncio
    async def test_insert_ignores_conflicts(self, mock_session):
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        mock_session.execute.return_value = result
        repo = CommissionPayoutRepository(mock_session)

        payout = await repo.create_if_absent(
            payment_id="pay-1",
            beneficiary_id=1,
            buyer_id=2,
            level_id=1,
            base_amount=Decimal("100"),
            rate_applied=Decimal("0.15"),
            amount=Decimal("15"),
            depth=1,
        )

        assert payout is None
        assert "ON CONFLICT ON CONSTRAINT uq_commission_payouts_payment_beneficiary DO NOTHING" in _statement_sql(mock_session)

    @pytest.mark.asyncio
    async def test_paginated_history(self, mock_session):
        stats = MagicMock()
        stats.one.return_value = SimpleNamespace(total=12, total_amount=Decimal("30"))
        page = MagicMock()
        page.scalars.return_value.all.return_value = ["p1", "p2"]
        mock_session.execute.side_effect = [stats, page]
        repo = CommissionPayoutRepository(mock_session)

        items, total, amount = await repo.get_by_beneficiary_paginated(1, page=2, per_page=10)

        assert items == ["p1", "p2"]
        assert total == 12
        assert amount == Decimal("30")
        assert mock_session.execute.await_count == 2
