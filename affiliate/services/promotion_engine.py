"""
Promotion engine.

State machine over the ordered level ladder. Every transition moves a user
exactly one level up; climbing further needs another call.
"""

from dataclasses import dataclass, field

from affiliate.config.constants import (
    PROMOTION_HISTORY_LIMIT,
    REASON_ADMIN_OVERRIDE,
    REASON_AUTOMATIC,
    REASON_INITIAL_ASSIGNMENT,
)
from affiliate.models import Level, Promotion
from affiliate.services.base_service import BaseService
from affiliate.services.level_catalog import LevelCatalog
from affiliate.services.structure_evaluator import (
    PromotionEvaluation,
    StructureEvaluator,
)
from affiliate.store.base import Store
from affiliate.utils.exceptions import (
    AffiliateError,
    InsufficientRequirementsError,
    NoNextLevelError,
    NotFoundError,
    ValidationError,
)


@dataclass
class PromotionResult:
    """Outcome of a promotion attempt."""

    promoted: bool
    from_level: Level | None
    to_level: Level | None
    evaluation: PromotionEvaluation | None = None
    record: Promotion | None = None


@dataclass
class LevelInfo:
    """Current ladder position of a user with progress details."""

    current_level: Level
    next_level: Level | None
    evaluation: PromotionEvaluation
    promotion_history: list[Promotion] = field(default_factory=list)

    @property
    def can_promote(self) -> bool:
        return self.evaluation.can_promote


@dataclass
class BatchPromotionSummary:
    """Outcome of a promotion sweep over all users."""

    evaluated: int = 0
    promoted: int = 0
    failed: int = 0


class PromotionEngine(BaseService):
    """Applies level transitions with a history record per transition."""

    def __init__(
        self,
        store: Store,
        evaluator: StructureEvaluator | None = None,
        catalog: LevelCatalog | None = None,
    ) -> None:
        super().__init__(store)
        self.catalog = catalog or LevelCatalog(store)
        self.evaluator = evaluator or StructureEvaluator(store, catalog=self.catalog)

    async def promote(self, user_id: int) -> PromotionResult:
        """
        Promote a qualifying user one level up.

        Args:
            user_id: User ID

        Returns:
            PromotionResult; ``promoted`` is False when a concurrent call
            already moved the user

        Raises:
            InsufficientRequirementsError: Structure does not qualify
            NoNextLevelError: User is at the top of the ladder
            NotFoundError: Unknown user or level
        """
        evaluation = await self.evaluator.evaluate(user_id)
        if not evaluation.structure_valid:
            raise InsufficientRequirementsError(evaluation.missing_requirements)

        return await self._advance(
            user_id,
            observed_level_id=evaluation.current_level_id,
            evaluation=evaluation,
            reason=REASON_AUTOMATIC,
            forced=False,
        )

    async def force_promote(
        self, user_id: int, forced: bool = False, actor_role: str | None = None
    ) -> PromotionResult:
        """
        Promote a user one level up without checking the structure.

        The caller is responsible for checking that ``actor_role`` is an
        administrative role; ``forced`` must still be passed explicitly.

        Args:
            user_id: User ID
            forced: Must be True
            actor_role: Role of the administrator, recorded in the logs

        Returns:
            PromotionResult

        Raises:
            ValidationError: ``forced`` was not set
            NoNextLevelError: User is at the top of the ladder
            NotFoundError: Unknown user or level
        """
        if forced is not True:
            raise ValidationError(
                "Administrative promotion requires an explicit forced=True flag"
            )

        evaluation = await self.evaluator.evaluate(user_id)

        self.logger.warning(
            "Administrative promotion requested",
            extra={
                "user_id": user_id,
                "actor_role": actor_role,
                "structure_valid": evaluation.structure_valid,
            },
        )

        return await self._advance(
            user_id,
            observed_level_id=evaluation.current_level_id,
            evaluation=evaluation,
            reason=REASON_ADMIN_OVERRIDE,
            forced=True,
        )

    async def _advance(
        self,
        user_id: int,
        observed_level_id: int,
        evaluation: PromotionEvaluation,
        reason: str,
        forced: bool,
    ) -> PromotionResult:
        async with self.store.transaction():
            user = await self.store.get_user(user_id, for_update=True)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")

            current = await self.catalog.get(user.level_id) if user.level_id else None

            if user.level_id != observed_level_id:
                # Another promotion committed after our evaluation
                self.logger.info(
                    "Promotion skipped, level changed concurrently",
                    extra={
                        "user_id": user_id,
                        "observed_level_id": observed_level_id,
                        "current_level_id": user.level_id,
                    },
                )
                return PromotionResult(
                    promoted=False,
                    from_level=current,
                    to_level=current,
                    evaluation=evaluation,
                )

            if current is None:
                raise NotFoundError(f"User {user_id} has no level assigned")

            next_level = await self.catalog.get_next(current)
            if next_level is None:
                raise NoNextLevelError(
                    f"User {user_id} is already at the highest level ({current.name})"
                )

            await self.store.update_user(
                user, level_id=next_level.id, version=user.version + 1
            )
            record = await self.store.add_promotion(
                user_id=user_id,
                from_level_id=current.id,
                to_level_id=next_level.id,
                reason=reason,
                snapshot=evaluation.snapshot(forced=forced),
            )

        self.logger.info(
            "User promoted",
            extra={
                "user_id": user_id,
                "from_level": current.order,
                "to_level": next_level.order,
                "reason": reason,
            },
        )
        return PromotionResult(
            promoted=True,
            from_level=current,
            to_level=next_level,
            evaluation=evaluation,
            record=record,
        )

    async def promote_all_eligible(self) -> BatchPromotionSummary:
        """
        Evaluate every active user and promote those who qualify.

        Registration only re-evaluates the direct referrer, so a completed
        structure two levels down is picked up by this sweep. Each user is
        promoted in its own transaction; one failure does not stop the
        sweep.

        Returns:
            BatchPromotionSummary
        """
        summary = BatchPromotionSummary()

        for user_id in await self.store.list_active_user_ids():
            summary.evaluated += 1
            try:
                evaluation = await self.evaluator.evaluate(user_id)
                if not evaluation.can_promote:
                    continue
                result = await self._advance(
                    user_id,
                    observed_level_id=evaluation.current_level_id,
                    evaluation=evaluation,
                    reason=REASON_AUTOMATIC,
                    forced=False,
                )
            except AffiliateError as e:
                summary.failed += 1
                self.logger.error(
                    "Promotion sweep failed for user",
                    extra={"user_id": user_id, "error": e.message},
                )
                continue

            if result.promoted:
                summary.promoted += 1

        self.logger.info(
            "Promotion sweep finished",
            extra={
                "evaluated": summary.evaluated,
                "promoted": summary.promoted,
                "failed": summary.failed,
            },
        )
        return summary

    async def assign_initial_level(self, user_id: int) -> PromotionResult:
        """
        Put a user without a level on the first rung of the ladder.

        Args:
            user_id: User ID

        Returns:
            PromotionResult; ``promoted`` is False if a level was already set

        Raises:
            NotFoundError: Unknown user or empty ladder
        """
        first = await self.catalog.get_first()

        async with self.store.transaction():
            user = await self.store.get_user(user_id, for_update=True)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")

            if user.level_id is not None:
                current = await self.catalog.get(user.level_id)
                return PromotionResult(
                    promoted=False, from_level=current, to_level=current
                )

            await self.store.update_user(
                user, level_id=first.id, version=user.version + 1
            )
            record = await self.store.add_promotion(
                user_id=user_id,
                from_level_id=None,
                to_level_id=first.id,
                reason=REASON_INITIAL_ASSIGNMENT,
                snapshot={
                    "direct_referrals": user.direct_referrals_count,
                    "valid_structure_count": 0,
                    "structure_valid": False,
                    "forced": False,
                },
            )

        self.logger.info(
            "Initial level assigned",
            extra={"user_id": user_id, "level": first.order},
        )
        return PromotionResult(
            promoted=True, from_level=None, to_level=first, record=record
        )

    async def get_level_info(self, user_id: int) -> LevelInfo:
        """
        Get the ladder position of a user with evaluation and history.

        Args:
            user_id: User ID

        Returns:
            LevelInfo with the latest promotion records
        """
        evaluation = await self.evaluator.evaluate(user_id)
        current = await self.catalog.get(evaluation.current_level_id)
        next_level = await self.catalog.get_next(current)
        history = await self.store.list_promotions(
            user_id, limit=PROMOTION_HISTORY_LIMIT
        )
        return LevelInfo(
            current_level=current,
            next_level=next_level,
            evaluation=evaluation,
            promotion_history=history,
        )
