"""
Tests for the promotion engine.

Tests cover:
- Automatic one-step promotion with history record
- Requirement and top-of-ladder errors
- Concurrent promotion of the same user
- Administrative override
- Rollback when the history record cannot be written
- Initial level assignment and level info
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from affiliate.config.constants import (
    REASON_ADMIN_OVERRIDE,
    REASON_AUTOMATIC,
    REASON_INITIAL_ASSIGNMENT,
)
from affiliate.utils.exceptions import (
    InsufficientRequirementsError,
    NoNextLevelError,
    NotFoundError,
    TransactionError,
    ValidationError,
)


class TestPromote:
    """Test automatic promotion."""

    @pytest.mark.asyncio
    async def test_promotes_one_level(self, engine, store, make_user, build_3x3, levels):
        root = await make_user("root")
        await build_3x3(root)

        result = await engine.promote(root.id)

        assert result.promoted is True
        assert result.from_level.order == 1
        assert result.to_level.order == 2
        assert root.level_id == levels[2].id
        assert root.version == 2

        record = result.record
        assert record.user_id == root.id
        assert record.from_level_id == levels[1].id
        assert record.to_level_id == levels[2].id
        assert record.reason == REASON_AUTOMATIC
        assert record.snapshot["direct_referrals"] == 3
        assert record.snapshot["valid_structure_count"] == 3
        assert record.snapshot["forced"] is False

    @pytest.mark.asyncio
    async def test_each_call_moves_one_step(self, engine, store, make_user, build_3x3, levels):
        """Climbing two levels takes two calls and two records."""
        root = await make_user("root")
        await build_3x3(root)

        first = await engine.promote(root.id)
        second = await engine.promote(root.id)

        assert (first.from_level.order, first.to_level.order) == (1, 2)
        assert (second.from_level.order, second.to_level.order) == (2, 3)
        history = await store.list_promotions(root.id)
        orders = {level.id: level.order for level in levels.values()}
        for record in history:
            assert orders[record.to_level_id] == orders[record.from_level_id] + 1

    @pytest.mark.asyncio
    async def test_insufficient_requirements(self, engine, make_user, levels):
        root = await make_user("root")
        await make_user("a", referrer=root)

        with pytest.raises(InsufficientRequirementsError) as exc_info:
            await engine.promote(root.id)

        assert exc_info.value.missing_requirements == ["need 2 more direct referrals"]
        assert root.level_id == levels[1].id

    @pytest.mark.asyncio
    async def test_highest_level(self, engine, store, make_user, build_3x3, levels):
        root = await make_user("root", level=3)
        await build_3x3(root)

        with pytest.raises(NoNextLevelError):
            await engine.promote(root.id)

        assert root.level_id == levels[3].id
        assert store.promotions == {}

    @pytest.mark.asyncio
    async def test_concurrent_promotions_apply_once(self, engine, store, make_user, build_3x3, levels):
        """Two racing calls observed the same level; only one applies."""
        root = await make_user("root")
        await build_3x3(root)

        results = await asyncio.gather(
            engine.promote(root.id),
            engine.promote(root.id),
        )

        assert sorted(r.promoted for r in results) == [False, True]
        assert root.level_id == levels[2].id
        assert root.version == 2
        assert len(store.promotions) == 1

    @pytest.mark.asyncio
    async def test_failed_history_write_rolls_back(self, engine, store, make_user, build_3x3, levels, monkeypatch):
        root = await make_user("root")
        await build_3x3(root)
        monkeypatch.setattr(
            store, "add_promotion", AsyncMock(side_effect=RuntimeError("disk full"))
        )

        with pytest.raises(RuntimeError):
            await engine.promote(root.id)

        assert root.level_id == levels[1].id
        assert root.version == 1


class TestForcePromote:
    """Test administrative promotion."""

    @pytest.mark.asyncio
    async def test_requires_explicit_flag(self, engine, make_user, levels):
        user = await make_user("user")

        with pytest.raises(ValidationError):
            await engine.force_promote(user.id, forced=False)

        assert user.level_id == levels[1].id

    @pytest.mark.asyncio
    async def test_skips_structure_check(self, engine, make_user, levels):
        user = await make_user("user")

        result = await engine.force_promote(user.id, forced=True, actor_role="admin")

        assert result.promoted is True
        assert result.to_level.order == 2
        assert result.record.reason == REASON_ADMIN_OVERRIDE
        assert result.record.snapshot["forced"] is True
        assert result.record.snapshot["direct_referrals"] == 0

    @pytest.mark.asyncio
    async def test_steps_exactly_one_level(self, engine, make_user, build_3x3, levels):
        user = await make_user("user")
        await build_3x3(user)

        result = await engine.force_promote(user.id, forced=True)

        assert (result.from_level.order, result.to_level.order) == (1, 2)

    @pytest.mark.asyncio
    async def test_highest_level(self, engine, make_user):
        user = await make_user("user", level=3)

        with pytest.raises(NoNextLevelError):
            await engine.force_promote(user.id, forced=True)


class TestInitialLevel:
    """Test first level assignment."""

    @pytest.mark.asyncio
    async def test_assigns_first_level(self, engine, make_user, levels):
        user = await make_user("new", level=None)

        result = await engine.assign_initial_level(user.id)

        assert result.promoted is True
        assert result.from_level is None
        assert result.to_level.order == 1
        assert user.level_id == levels[1].id
        assert result.record.from_level_id is None
        assert result.record.reason == REASON_INITIAL_ASSIGNMENT

    @pytest.mark.asyncio
    async def test_second_call_is_noop(self, engine, store, make_user, levels):
        user = await make_user("new", level=None)
        await engine.assign_initial_level(user.id)

        result = await engine.assign_initial_level(user.id)

        assert result.promoted is False
        assert result.to_level.order == 1
        assert len(store.promotions) == 1

    @pytest.mark.asyncio
    async def test_unknown_user(self, engine, levels):
        with pytest.raises(NotFoundError):
            await engine.assign_initial_level(999)


class TestLevelInfo:

    @pytest.mark.asyncio
    async def test_level_info_with_history(self, engine, make_user, build_3x3):
        root = await make_user("root")
        await build_3x3(root)
        await engine.promote(root.id)

        info = await engine.get_level_info(root.id)

        assert info.current_level.order == 2
        assert info.next_level.order == 3
        assert info.can_promote is True
        assert len(info.promotion_history) == 1
        assert info.promotion_history[0].reason == REASON_AUTOMATIC


class TestPromotionSweep:
    """Test the batch promotion sweep."""

    @pytest.mark.asyncio
    async def test_sweep_promotes_qualified_users(self, engine, make_user, build_3x3, levels):
        root = await make_user("root")
        await build_3x3(root)
        other = await make_user("other")
        await make_user("only-child", referrer=other)

        summary = await engine.promote_all_eligible()

        assert summary.evaluated == 15
        assert summary.promoted == 1
        assert summary.failed == 0
        assert root.level_id == levels[2].id
        assert other.level_id == levels[1].id

    @pytest.mark.asyncio
    async def test_sweep_skips_inactive_and_levelless(self, engine, store, make_user, build_3x3):
        root = await make_user("root", is_active=False)
        await build_3x3(root)
        await make_user("new", level=None)

        summary = await engine.promote_all_eligible()

        assert summary.evaluated == 12
        assert summary.promoted == 0
        assert store.promotions == {}

    @pytest.mark.asyncio
    async def test_sweep_continues_after_failure(self, engine, store, make_user, build_3x3, monkeypatch):
        first = await make_user("first")
        await build_3x3(first, prefix="f")
        second = await make_user("second")
        await build_3x3(second, prefix="s")
        original = store.add_promotion
        calls = []

        async def flaky(**data):
            calls.append(data["user_id"])
            if len(calls) == 1:
                raise TransactionError("deadlock detected")
            return await original(**data)

        monkeypatch.setattr(store, "add_promotion", flaky)

        summary = await engine.promote_all_eligible()

        assert summary.failed == 1
        assert summary.promoted == 1
        assert first.level_id != second.level_id
