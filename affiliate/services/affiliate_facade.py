"""
Affiliate facade.

Entry points used by the web layer and payment webhooks. Wires the engine
components over one store and turns caller errors into result fields where
the callers expect a result instead of an exception.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from affiliate.config.constants import DEFAULT_STRUCTURE_DEPTH
from affiliate.config.settings import Settings, settings as default_settings
from affiliate.models import Level, User
from affiliate.services.base_service import BaseService, log_operation
from affiliate.services.commission_calculator import (
    CommissionCalculator,
    CommissionDistribution,
    CommissionHistory,
)
from affiliate.services.level_catalog import LevelCatalog
from affiliate.services.promotion_engine import LevelInfo, PromotionEngine
from affiliate.services.referral_graph import ReferralGraph
from affiliate.services.registration_service import (
    ReferralRegistrationService,
    RegistrationResult,
)
from affiliate.services.structure_evaluator import (
    PromotionEvaluation,
    StructureEvaluator,
)
from affiliate.store import SqlAlchemyStore
from affiliate.store.base import Store
from affiliate.utils.exceptions import CALLER_ERRORS, NotFoundError


@dataclass
class LevelSummary:
    """Display data of a level."""

    id: int
    order: int
    name: str
    color: str
    icon: str | None

    @classmethod
    def from_level(cls, level: Level) -> "LevelSummary":
        return cls(
            id=level.id,
            order=level.order,
            name=level.name,
            color=level.color,
            icon=level.icon,
        )


@dataclass
class TreeNode:
    """Node of the referral tree shown to a user."""

    id: int
    name: str
    level: LevelSummary | None
    is_active: bool
    join_date: datetime
    referral_count: int
    direct_referrals: list["TreeNode"] = field(default_factory=list)


@dataclass
class ForcePromotionResult:
    success: bool
    new_level: Level | None = None
    error: str | None = None


class AffiliateFacade(BaseService):
    """
    External interface of the affiliate engine.

    One facade per request: all components share the injected store and
    therefore the same transaction scope.
    """

    def __init__(self, store: Store, settings: Settings | None = None) -> None:
        super().__init__(store)
        self.settings = settings or default_settings

        self.catalog = LevelCatalog(store)
        self.graph = ReferralGraph(store)
        self.evaluator = StructureEvaluator(
            store, graph=self.graph, catalog=self.catalog
        )
        self.engine = PromotionEngine(
            store, evaluator=self.evaluator, catalog=self.catalog
        )
        self.calculator = CommissionCalculator(
            store,
            graph=self.graph,
            catalog=self.catalog,
            max_levels=self.settings.commission_max_levels,
        )
        self.registration = ReferralRegistrationService(
            store,
            graph=self.graph,
            evaluator=self.evaluator,
            engine=self.engine,
            auto_evaluate=self.settings.promotion_auto_evaluate,
        )

    @classmethod
    def from_session(
        cls, session: AsyncSession, settings: Settings | None = None
    ) -> "AffiliateFacade":
        """Build a facade over a SQLAlchemy session."""
        return cls(SqlAlchemyStore(session), settings=settings)

    @log_operation
    async def register_referral(
        self, referrer_id: int, referred_id: int
    ) -> RegistrationResult:
        """
        Register a referral and promote the referrer when it qualifies.

        Validation and lookup errors are returned in ``error``.
        """
        try:
            return await self.registration.register_and_evaluate(
                referrer_id, referred_id
            )
        except CALLER_ERRORS as e:
            self.logger.info(
                "Referral rejected",
                extra={
                    "referrer_id": referrer_id,
                    "referred_id": referred_id,
                    "error": e.message,
                },
            )
            return RegistrationResult(referral_created=False, error=e.message)

    async def evaluate_promotion(self, user_id: int) -> PromotionEvaluation:
        return await self.evaluator.evaluate(user_id)

    async def get_level_info(self, user_id: int) -> LevelInfo:
        return await self.engine.get_level_info(user_id)

    async def get_commission_history(
        self, user_id: int, page: int = 1, limit: int = 10
    ) -> CommissionHistory:
        return await self.calculator.get_commission_history(user_id, page, limit)

    async def get_referral_structure(
        self, user_id: int, max_depth: int = DEFAULT_STRUCTURE_DEPTH
    ) -> TreeNode:
        """
        Build the referral tree below a user.

        Built from a single breadth-first pass; children keep referral
        order.

        Args:
            user_id: Root user ID
            max_depth: Levels below the root (capped by the traversal)

        Returns:
            Root TreeNode
        """
        root = await self.store.get_user(user_id)
        if root is None:
            raise NotFoundError(f"User {user_id} not found")

        levels = {
            level.id: LevelSummary.from_level(level)
            for level in await self.catalog.list_levels()
        }

        def to_node(user: User) -> TreeNode:
            return TreeNode(
                id=user.id,
                name=user.display_name,
                level=levels.get(user.level_id) if user.level_id else None,
                is_active=user.is_active,
                join_date=user.created_at,
                referral_count=user.direct_referrals_count,
            )

        nodes = {root.id: to_node(root)}
        async for user, _ in self.graph.get_subtree(user_id, max_depth):
            node = to_node(user)
            nodes[user.id] = node
            # BFS guarantees the parent node already exists
            nodes[user.referred_by].direct_referrals.append(node)

        return nodes[root.id]

    @log_operation
    async def force_promote(
        self, user_id: int, actor_role: str, forced: bool = True
    ) -> ForcePromotionResult:
        """
        Promote a user one level regardless of structure.

        The caller has already checked that ``actor_role`` is allowed to
        do this; the role is only logged here.
        """
        try:
            result = await self.engine.force_promote(
                user_id, forced=forced, actor_role=actor_role
            )
        except CALLER_ERRORS as e:
            return ForcePromotionResult(success=False, error=e.message)

        if not result.promoted:
            return ForcePromotionResult(
                success=False,
                new_level=result.to_level,
                error="Level changed concurrently, promotion not applied",
            )
        return ForcePromotionResult(success=True, new_level=result.to_level)

    @log_operation
    async def on_purchase_completed(
        self, buyer_id: int, base_amount: Decimal | int | str, payment_id: str
    ) -> CommissionDistribution:
        """Distribute commissions for a completed purchase."""
        return await self.calculator.distribute(buyer_id, base_amount, payment_id)
