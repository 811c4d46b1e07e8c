"""
Tests for multi-level commission distribution.

Tests cover:
- Rate of the ancestor's current level (not of the depth)
- Idempotent retries per payment
- Depth limit and ancestors without level
- Input validation
- Commission history, potential earnings and reports
"""

import asyncio
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from affiliate.utils.exceptions import NotFoundError, ValidationError


@pytest.fixture
def chain(make_user):
    """
    Factory creating a referral chain top -> ... -> buyer.

    Args:
        level orders from the top ancestor down to the direct referrer
    """

    async def _chain(*ancestor_levels):
        previous = None
        ancestors = []
        for i, level in enumerate(ancestor_levels):
            previous = await make_user(f"a{i}", referrer=previous, level=level)
            ancestors.append(previous)
        buyer = await make_user("buyer", referrer=previous)
        return ancestors, buyer

    return _chain


class TestDistribute:
    """Test commission distribution."""

    @pytest.mark.asyncio
    async def test_two_level_example(self, calculator, chain):
        """Purchase of 100000 with ancestors at rates 0.20 and 0.15."""
        (grandparent, parent), buyer = await chain(1, 2)

        result = await calculator.distribute(buyer.id, Decimal("100000"), "pay-1")

        assert [(p.beneficiary_id, p.depth, p.amount) for p in result.payouts] == [
            (parent.id, 1, Decimal("20000")),
            (grandparent.id, 2, Decimal("15000")),
        ]
        assert result.total_commissions == Decimal("35000")
        assert result.replayed is False
        assert parent.total_earnings == Decimal("20000")
        assert grandparent.total_earnings == Decimal("15000")

    @pytest.mark.asyncio
    async def test_retry_is_idempotent(self, calculator, store, chain):
        (grandparent, parent), buyer = await chain(1, 2)
        await calculator.distribute(buyer.id, Decimal("100000"), "pay-1")

        retry = await calculator.distribute(buyer.id, Decimal("100000"), "pay-1")

        assert retry.replayed is True
        assert retry.total_commissions == Decimal("35000")
        assert len(store.payouts) == 2
        assert parent.total_earnings == Decimal("20000")
        assert grandparent.total_earnings == Decimal("15000")

    @pytest.mark.asyncio
    async def test_concurrent_retries_pay_once(self, calculator, store, chain):
        (_, parent), buyer = await chain(1, 2)

        results = await asyncio.gather(
            calculator.distribute(buyer.id, 100000, "pay-1"),
            calculator.distribute(buyer.id, 100000, "pay-1"),
        )

        assert sorted(r.replayed for r in results) == [False, True]
        assert len(store.payouts) == 2
        assert parent.total_earnings == Decimal("20000")

    @pytest.mark.asyncio
    async def test_rate_follows_ancestor_level(self, calculator, chain):
        """A deeper ancestor with a higher level earns more."""
        (top, parent), buyer = await chain(3, 1)

        result = await calculator.distribute(buyer.id, Decimal("1000"), "pay-2")

        amounts = {p.beneficiary_id: p.amount for p in result.payouts}
        assert amounts[parent.id] == Decimal("150")
        assert amounts[top.id] == Decimal("250")

    @pytest.mark.asyncio
    async def test_stops_at_max_levels(self, calculator, chain):
        ancestors, buyer = await chain(1, 1, 1, 1)

        result = await calculator.distribute(buyer.id, Decimal("100"), "pay-3")

        assert [p.depth for p in result.payouts] == [1, 2, 3]
        assert ancestors[0].total_earnings == Decimal("0")

    @pytest.mark.asyncio
    async def test_explicit_max_levels(self, calculator, chain):
        _, buyer = await chain(1, 1, 1)

        result = await calculator.distribute(buyer.id, Decimal("100"), "pay-4", max_levels=1)

        assert [p.depth for p in result.payouts] == [1]

    @pytest.mark.asyncio
    async def test_ancestor_without_level_consumes_hop(self, calculator, chain):
        ancestors, buyer = await chain(1, 1, 1, None)

        result = await calculator.distribute(buyer.id, Decimal("100"), "pay-5")

        assert [p.depth for p in result.payouts] == [2, 3]
        assert ancestors[3].total_earnings == Decimal("0")
        assert ancestors[0].total_earnings == Decimal("0")

    @pytest.mark.asyncio
    async def test_direct_edge_tracks_commission(self, calculator, store, chain):
        _, buyer = await chain(1, 2)

        await calculator.distribute(buyer.id, Decimal("100000"), "pay-6")
        await calculator.distribute(buyer.id, Decimal("50000"), "pay-7")

        edge = await store.get_referral_by_referred(buyer.id)
        assert edge.commission == Decimal("30000")

    @pytest.mark.asyncio
    async def test_buyer_without_referrer(self, calculator, make_user):
        buyer = await make_user("alone")

        result = await calculator.distribute(buyer.id, Decimal("100"), "pay-8")

        assert result.payouts == []
        assert result.total_commissions == Decimal("0")

    @pytest.mark.asyncio
    async def test_payment_id_of_another_buyer_rejected(
        self, calculator, store, chain, make_user
    ):
        """A payment id belongs to the buyer it was first distributed for."""
        (parent,), buyer = await chain(1)
        other_parent = await make_user("other-parent")
        other_buyer = await make_user("other-buyer", referrer=other_parent)
        await calculator.distribute(buyer.id, Decimal("100"), "pay-1")

        with pytest.raises(ValidationError, match="another buyer"):
            await calculator.distribute(other_buyer.id, Decimal("100"), "pay-1")

        assert len(store.payouts) == 1
        assert parent.total_earnings == Decimal("15")
        assert other_parent.total_earnings == Decimal("0")

    @pytest.mark.asyncio
    async def test_retry_after_late_referrer_pays(self, calculator, graph, make_user):
        """An empty distribution leaves nothing to replay."""
        buyer = await make_user("alone")
        await calculator.distribute(buyer.id, Decimal("100"), "pay-8")
        parent = await make_user("late-parent")
        await graph.record_referral(parent.id, buyer.id)

        retry = await calculator.distribute(buyer.id, Decimal("100"), "pay-8")

        assert retry.replayed is False
        assert [(p.beneficiary_id, p.amount) for p in retry.payouts] == [
            (parent.id, Decimal("15")),
        ]

    @pytest.mark.asyncio
    async def test_unknown_buyer(self, calculator, levels):
        with pytest.raises(NotFoundError):
            await calculator.distribute(999, Decimal("100"), "pay-9")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), "abc"])
    async def test_invalid_amount(self, calculator, chain, amount):
        _, buyer = await chain(1)

        with pytest.raises(ValidationError):
            await calculator.distribute(buyer.id, amount, "pay-10")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_levels", [0, 11])
    async def test_invalid_max_levels(self, calculator, chain, max_levels):
        _, buyer = await chain(1)

        with pytest.raises(ValidationError):
            await calculator.distribute(buyer.id, Decimal("100"), "pay-11", max_levels=max_levels)

    @pytest.mark.asyncio
    async def test_amounts_are_quantized(self, calculator, chain):
        _, buyer = await chain(1)

        result = await calculator.distribute(buyer.id, Decimal("0.333333333"), "pay-12")

        assert result.base_amount == Decimal("0.33333333")
        assert result.payouts[0].amount == Decimal("0.05000000")


class TestHistoryAndProjection:
    """Test read-only commission views."""

    @pytest.mark.asyncio
    async def test_commission_history(self, calculator, chain):
        (_, parent), buyer = await chain(1, 2)
        await calculator.distribute(buyer.id, Decimal("100"), "pay-1")
        await calculator.distribute(buyer.id, Decimal("200"), "pay-2")

        history = await calculator.get_commission_history(parent.id, page=1, limit=1)

        assert history.total == 2
        assert history.total_pages == 2
        assert history.total_earned == Decimal("60")
        assert [p.payment_id for p in history.items] == ["pay-2"]

    @pytest.mark.asyncio
    async def test_history_rejects_bad_page(self, calculator, make_user):
        user = await make_user("u")

        with pytest.raises(ValidationError):
            await calculator.get_commission_history(user.id, page=0)

    @pytest.mark.asyncio
    async def test_potential_earnings(self, calculator, make_user):
        user = await make_user("u")

        projection = await calculator.calculate_potential_earnings(user.id)

        assert projection.current_rate == Decimal("0.15")
        assert projection.monthly_potential == Decimal("150000")
        assert projection.yearly_potential == Decimal("1800000")
        assert projection.next_level.order == 2
        assert projection.next_level_potential == Decimal("200000")
        assert projection.improvement_amount == Decimal("50000")

    @pytest.mark.asyncio
    async def test_potential_earnings_at_top(self, calculator, make_user):
        user = await make_user("u", level=3)

        projection = await calculator.calculate_potential_earnings(user.id, 1000)

        assert projection.monthly_potential == Decimal("250")
        assert projection.next_level is None
        assert projection.improvement_amount is None

    @pytest.mark.asyncio
    async def test_potential_earnings_without_level(self, calculator, make_user):
        user = await make_user("u", level=None)

        with pytest.raises(NotFoundError):
            await calculator.calculate_potential_earnings(user.id)

    @pytest.mark.asyncio
    async def test_report_groups_by_level(self, calculator, chain):
        _, buyer = await chain(1, 2)
        await calculator.distribute(buyer.id, Decimal("100000"), "pay-1")
        now = datetime.now(UTC)

        report = await calculator.generate_report(
            now - timedelta(hours=1), now + timedelta(hours=1)
        )

        assert report.total_payouts == 2
        assert report.total_commissions == Decimal("35000")
        assert report.unique_beneficiaries == 2
        assert report.average_commission == Decimal("17500")
        by_level = {line.level: line for line in report.by_level}
        assert by_level["Mentor"].total_amount == Decimal("20000")
        assert by_level["Starter"].count == 1

    @pytest.mark.asyncio
    async def test_empty_report(self, calculator, levels):
        now = datetime.now(UTC)

        report = await calculator.generate_report(now - timedelta(days=1), now)

        assert report.total_payouts == 0
        assert report.average_commission == Decimal("0")
        assert report.by_level == []

    @pytest.mark.asyncio
    async def test_report_window_validation(self, calculator, levels):
        now = datetime.now(UTC)

        with pytest.raises(ValidationError):
            await calculator.generate_report(now, now - timedelta(days=1))
