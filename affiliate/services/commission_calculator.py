"""
Commission calculator.

Distributes a completed purchase up the referral chain. Each ancestor earns
the rate of its own current level; the depth only bounds how far up the
distribution goes. Payouts are idempotent per (payment_id, beneficiary).
"""

import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation

from affiliate.config.constants import (
    DEFAULT_COMMISSION_MAX_LEVELS,
    MAX_COMMISSION_LEVELS,
    MONEY_QUANTUM,
)
from affiliate.models import CommissionPayout, Level
from affiliate.services.base_service import BaseService
from affiliate.services.level_catalog import LevelCatalog
from affiliate.services.referral_graph import ReferralGraph
from affiliate.store.base import Store
from affiliate.utils.exceptions import NotFoundError, ValidationError


NO_LEVEL_LABEL = "no level"


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Convert a value to a quantized Decimal amount.

    Raises:
        ValidationError: If the value is not a number
    """
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid amount: {value!r}") from e
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return amount.quantize(MONEY_QUANTUM)


@dataclass
class CommissionLine:
    """One ancestor's share of a payment."""

    beneficiary_id: int
    depth: int
    level_id: int | None
    rate: Decimal
    amount: Decimal

    @classmethod
    def from_payout(cls, payout: CommissionPayout) -> "CommissionLine":
        return cls(
            beneficiary_id=payout.beneficiary_id,
            depth=payout.depth,
            level_id=payout.level_id,
            rate=payout.rate_applied,
            amount=payout.amount,
        )


@dataclass
class CommissionDistribution:
    """Payouts generated by one purchase."""

    payment_id: str
    buyer_id: int
    base_amount: Decimal
    payouts: list[CommissionLine] = field(default_factory=list)
    replayed: bool = False

    @property
    def total_commissions(self) -> Decimal:
        return sum((line.amount for line in self.payouts), Decimal("0"))


@dataclass
class CommissionHistory:
    """Page of payouts received by a user."""

    user_id: int
    items: list[CommissionPayout]
    page: int
    limit: int
    total: int
    total_earned: Decimal

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass
class PotentialEarnings:
    """Projection of earnings at the current and next level."""

    current_level: Level
    current_rate: Decimal
    monthly_potential: Decimal
    yearly_potential: Decimal
    next_level: Level | None = None
    next_level_potential: Decimal | None = None
    improvement_amount: Decimal | None = None


@dataclass
class LevelReportLine:
    level: str
    count: int
    total_amount: Decimal
    unique_beneficiaries: int
    average_amount: Decimal


@dataclass
class CommissionReport:
    """Payout totals over a time window, grouped by beneficiary level."""

    start: datetime
    end: datetime
    total_commissions: Decimal
    total_payouts: int
    unique_beneficiaries: int
    average_commission: Decimal
    by_level: list[LevelReportLine] = field(default_factory=list)


class CommissionCalculator(BaseService):
    """Multi-level commission distribution and reporting."""

    def __init__(
        self,
        store: Store,
        graph: ReferralGraph | None = None,
        catalog: LevelCatalog | None = None,
        max_levels: int = DEFAULT_COMMISSION_MAX_LEVELS,
    ) -> None:
        super().__init__(store)
        self.graph = graph or ReferralGraph(store)
        self.catalog = catalog or LevelCatalog(store)
        self.max_levels = max_levels

    async def distribute(
        self,
        buyer_id: int,
        base_amount: Decimal | int | str,
        payment_id: str,
        max_levels: int | None = None,
    ) -> CommissionDistribution:
        """
        Pay commissions to the ancestors of a buyer.

        Calling again with the same payment_id creates nothing and returns
        the payouts recorded by the first call. A payment that produced no
        payouts (buyer without referrer) leaves nothing to replay, so a retry
        after the buyer gains a referrer pays that chain.

        Args:
            buyer_id: User who made the purchase
            base_amount: Purchase amount
            payment_id: External payment identifier
            max_levels: Ancestors taking part (defaults to the configured value)

        Returns:
            CommissionDistribution

        Raises:
            ValidationError: Non-positive amount, empty payment_id, a
                payment_id already distributed for another buyer or
                max_levels outside [1, MAX_COMMISSION_LEVELS]
            NotFoundError: Unknown buyer
            GraphIntegrityError: Corrupted referral chain
        """
        max_levels = self.max_levels if max_levels is None else max_levels
        if not 1 <= max_levels <= MAX_COMMISSION_LEVELS:
            raise ValidationError(
                f"max_levels must be between 1 and {MAX_COMMISSION_LEVELS}"
            )
        if not payment_id:
            raise ValidationError("payment_id is required")

        amount = to_money(base_amount)
        if amount <= 0:
            raise ValidationError(f"Base amount must be positive, got {amount}")

        distribution = CommissionDistribution(
            payment_id=payment_id, buyer_id=buyer_id, base_amount=amount
        )

        async with self.store.transaction():
            # Serializes distributions of the same buyer
            buyer = await self.store.get_user(buyer_id, for_update=True)
            if buyer is None:
                raise NotFoundError(f"Buyer {buyer_id} not found")

            existing = await self.store.get_payouts_by_payment(payment_id)
            if any(payout.buyer_id != buyer_id for payout in existing):
                self.logger.warning(
                    "Payment id reused for another buyer",
                    extra={
                        "payment_id": payment_id,
                        "buyer_id": buyer_id,
                        "original_buyer_id": existing[0].buyer_id,
                    },
                )
                raise ValidationError(
                    f"payment_id {payment_id} already used for another buyer"
                )
            if existing:
                self.logger.info(
                    "Payment already distributed",
                    extra={"payment_id": payment_id, "payouts": len(existing)},
                )
                distribution.payouts = [
                    CommissionLine.from_payout(payout) for payout in existing
                ]
                distribution.replayed = True
                return distribution

            if buyer.referred_by is None:
                return distribution

            ancestors = await self.graph.get_ancestors(buyer_id, max_hops=max_levels)

            for depth, ancestor in enumerate(ancestors, start=1):
                if ancestor.level_id is None:
                    self.logger.debug(
                        "Ancestor without level skipped",
                        extra={"payment_id": payment_id, "user_id": ancestor.id},
                    )
                    continue

                level = await self.catalog.get(ancestor.level_id)
                share = (amount * level.commission_rate).quantize(MONEY_QUANTUM)

                payout = await self.store.create_payout_if_absent(
                    payment_id=payment_id,
                    beneficiary_id=ancestor.id,
                    buyer_id=buyer_id,
                    level_id=level.id,
                    base_amount=amount,
                    rate_applied=level.commission_rate,
                    amount=share,
                    depth=depth,
                )
                if payout is None:
                    self.logger.warning(
                        "Payout already exists for beneficiary",
                        extra={"payment_id": payment_id, "user_id": ancestor.id},
                    )
                    continue

                await self.store.increment_user_fields(
                    [ancestor.id], total_earnings=share
                )
                if depth == 1:
                    edge = await self.store.get_referral_by_referred(buyer_id)
                    if edge is not None:
                        await self.store.update_referral(
                            edge, commission=edge.commission + share
                        )

                distribution.payouts.append(CommissionLine.from_payout(payout))

        self.logger.info(
            "Commissions distributed",
            extra={
                "payment_id": payment_id,
                "buyer_id": buyer_id,
                "base_amount": str(amount),
                "payouts": len(distribution.payouts),
                "total": str(distribution.total_commissions),
            },
        )
        return distribution

    async def get_commission_history(
        self, user_id: int, page: int = 1, limit: int = 10
    ) -> CommissionHistory:
        """
        Get payouts received by a user, newest first.

        Args:
            user_id: Beneficiary user ID
            page: Page number (1-based)
            limit: Items per page

        Returns:
            CommissionHistory with pagination and lifetime total
        """
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        if await self.store.get_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")

        items, total, total_earned = await self.store.list_payouts_by_beneficiary(
            user_id, page=page, per_page=limit
        )
        return CommissionHistory(
            user_id=user_id,
            items=items,
            page=page,
            limit=limit,
            total=total,
            total_earned=total_earned,
        )

    async def calculate_potential_earnings(
        self,
        user_id: int,
        projected_sales: Decimal | int | str = Decimal("1000000"),
    ) -> PotentialEarnings:
        """
        Project monthly earnings at the current and at the next level.

        Args:
            user_id: User ID
            projected_sales: Monthly sales volume below the user

        Returns:
            PotentialEarnings

        Raises:
            NotFoundError: Unknown user or user without level
        """
        sales = to_money(projected_sales)
        if sales < 0:
            raise ValidationError("Projected sales cannot be negative")

        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        if user.level_id is None:
            raise NotFoundError(f"User {user_id} has no level assigned")

        level = await self.catalog.get(user.level_id)
        monthly = (sales * level.commission_rate).quantize(MONEY_QUANTUM)
        result = PotentialEarnings(
            current_level=level,
            current_rate=level.commission_rate,
            monthly_potential=monthly,
            yearly_potential=monthly * 12,
        )

        next_level = await self.catalog.get_next(level)
        if next_level is not None:
            result.next_level = next_level
            result.next_level_potential = (
                sales * next_level.commission_rate
            ).quantize(MONEY_QUANTUM)
            result.improvement_amount = result.next_level_potential - monthly

        return result

    async def generate_report(
        self, start: datetime, end: datetime
    ) -> CommissionReport:
        """
        Summarize payouts created between two instants (inclusive).

        Args:
            start: Window start
            end: Window end

        Returns:
            CommissionReport grouped by the level held at payout time
        """
        if start > end:
            raise ValidationError("Report start must not be after its end")

        payouts = await self.store.list_payouts_between(start, end)
        level_names = {
            level.id: level.name for level in await self.catalog.list_levels()
        }

        groups: dict[str, list[CommissionPayout]] = defaultdict(list)
        for payout in payouts:
            groups[level_names.get(payout.level_id, NO_LEVEL_LABEL)].append(payout)

        by_level = []
        for name, rows in groups.items():
            total = sum((row.amount for row in rows), Decimal("0"))
            by_level.append(
                LevelReportLine(
                    level=name,
                    count=len(rows),
                    total_amount=total,
                    unique_beneficiaries=len({row.beneficiary_id for row in rows}),
                    average_amount=(total / len(rows)).quantize(MONEY_QUANTUM),
                )
            )

        total_commissions = sum((p.amount for p in payouts), Decimal("0"))
        return CommissionReport(
            start=start,
            end=end,
            total_commissions=total_commissions,
            total_payouts=len(payouts),
            unique_beneficiaries=len({p.beneficiary_id for p in payouts}),
            average_commission=(
                (total_commissions / len(payouts)).quantize(MONEY_QUANTUM)
                if payouts else Decimal("0")
            ),
            by_level=by_level,
        )
