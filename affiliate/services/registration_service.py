"""
Referral registration service.

Records a referral and then tries to promote the referrer. The referral
is committed on its own; a failed promotion never undoes it.
"""

from dataclasses import dataclass

from affiliate.models import Level
from affiliate.services.base_service import BaseService
from affiliate.services.promotion_engine import PromotionEngine
from affiliate.services.referral_graph import ReferralGraph
from affiliate.services.structure_evaluator import StructureEvaluator
from affiliate.store.base import Store
from affiliate.utils.exceptions import AffiliateError


@dataclass
class RegistrationResult:
    """Outcome of registering a referral."""

    referral_created: bool
    promoted: bool = False
    new_level: Level | None = None
    error: str | None = None


class ReferralRegistrationService(BaseService):
    """Orchestrates record -> evaluate -> promote for a new referral."""

    def __init__(
        self,
        store: Store,
        graph: ReferralGraph | None = None,
        evaluator: StructureEvaluator | None = None,
        engine: PromotionEngine | None = None,
        auto_evaluate: bool = True,
    ) -> None:
        super().__init__(store)
        self.graph = graph or ReferralGraph(store)
        self.evaluator = evaluator or StructureEvaluator(store, graph=self.graph)
        self.engine = engine or PromotionEngine(store, evaluator=self.evaluator)
        self.auto_evaluate = auto_evaluate

    async def register_and_evaluate(
        self, referrer_id: int, referred_id: int
    ) -> RegistrationResult:
        """
        Record a referral and promote the referrer if it now qualifies.

        Args:
            referrer_id: User who invited
            referred_id: User who was invited

        Returns:
            RegistrationResult; promotion problems end up in ``error``

        Raises:
            ValidationError: Invalid referral
            NotFoundError: Unknown user
        """
        record = await self.graph.record_referral(referrer_id, referred_id)
        result = RegistrationResult(referral_created=record.created)

        if not self.auto_evaluate:
            return result

        try:
            evaluation = await self.evaluator.evaluate(referrer_id)
            if not evaluation.can_promote:
                return result

            promotion = await self.engine.promote(referrer_id)
        except AffiliateError as e:
            self.logger.warning(
                "Promotion after referral failed",
                extra={
                    "referrer_id": referrer_id,
                    "referred_id": referred_id,
                    "error": e.message,
                    "error_type": type(e).__name__,
                },
            )
            result.error = e.message
            return result

        result.promoted = promotion.promoted
        if promotion.promoted:
            result.new_level = promotion.to_level
        return result
