"""
Structure evaluator.

Read-only 3x3 check over the referral graph.

Only the first three active direct referrals (earliest referred first) are
inspected; a fourth or later referral never changes the outcome, however
deep its own branch grows.
"""

from dataclasses import dataclass, field
from typing import Any

from affiliate.config.constants import (
    REQUIRED_DIRECT_REFERRALS,
    REQUIRED_SECOND_LEVEL_REFERRALS,
    REQUIRED_STRUCTURE_DESCRIPTION,
)
from affiliate.services.base_service import BaseService
from affiliate.services.level_catalog import LevelCatalog
from affiliate.services.referral_graph import ReferralGraph
from affiliate.store.base import Store
from affiliate.utils.exceptions import NotFoundError


@dataclass
class BranchStatus:
    """One of the first three direct referrals and its own referral count."""

    user_id: int
    name: str
    direct_referrals: int

    @property
    def valid(self) -> bool:
        return self.direct_referrals >= REQUIRED_SECOND_LEVEL_REFERRALS

    @property
    def missing(self) -> int:
        return max(0, REQUIRED_SECOND_LEVEL_REFERRALS - self.direct_referrals)


@dataclass
class PromotionEvaluation:
    """Result of evaluating a user against the 3x3 rule."""

    user_id: int
    can_promote: bool
    structure_valid: bool
    current_level_id: int
    current_level: int
    next_level: int | None
    direct_referrals: int
    valid_second_level_referrals: int
    missing_requirements: list[str] = field(default_factory=list)
    branches: list[BranchStatus] = field(default_factory=list)
    required_structure: str = REQUIRED_STRUCTURE_DESCRIPTION

    def snapshot(self, forced: bool = False) -> dict[str, Any]:
        """Evaluation data stored with a promotion record."""
        return {
            "direct_referrals": self.direct_referrals,
            "valid_structure_count": self.valid_second_level_referrals,
            "structure_valid": self.structure_valid,
            "forced": forced,
        }


class StructureEvaluator(BaseService):
    """Computes promotion eligibility; never writes."""

    def __init__(
        self,
        store: Store,
        graph: ReferralGraph | None = None,
        catalog: LevelCatalog | None = None,
    ) -> None:
        super().__init__(store)
        self.graph = graph or ReferralGraph(store)
        self.catalog = catalog or LevelCatalog(store)

    async def evaluate(self, user_id: int) -> PromotionEvaluation:
        """
        Evaluate whether a user can move to the next level.

        Args:
            user_id: User ID

        Returns:
            PromotionEvaluation

        Raises:
            NotFoundError: If the user does not exist or has no level
        """
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        if user.level_id is None:
            raise NotFoundError(f"User {user_id} has no level assigned")

        level = await self.catalog.get(user.level_id)
        next_level = await self.catalog.get_next(level)

        children = await self.graph.get_direct_children(user_id, active_only=True)
        direct_count = len(children)

        evaluation = PromotionEvaluation(
            user_id=user_id,
            can_promote=False,
            structure_valid=False,
            current_level_id=level.id,
            current_level=level.order,
            next_level=next_level.order if next_level else None,
            direct_referrals=direct_count,
            valid_second_level_referrals=0,
        )

        if direct_count < REQUIRED_DIRECT_REFERRALS:
            evaluation.missing_requirements = [
                f"need {REQUIRED_DIRECT_REFERRALS - direct_count} more direct referrals"
            ]
            return evaluation

        first_three = children[:REQUIRED_DIRECT_REFERRALS]
        counts = await self.store.count_children_of_many(
            [child.id for child in first_three], active_only=True
        )
        evaluation.branches = [
            BranchStatus(
                user_id=child.id,
                name=child.display_name,
                direct_referrals=counts.get(child.id, 0),
            )
            for child in first_three
        ]

        valid_count = sum(1 for branch in evaluation.branches if branch.valid)
        evaluation.valid_second_level_referrals = valid_count
        evaluation.missing_requirements = [
            f"{branch.name} needs {branch.missing} more referrals"
            for branch in evaluation.branches
            if not branch.valid
        ]
        evaluation.structure_valid = valid_count == REQUIRED_DIRECT_REFERRALS

        if evaluation.structure_valid and next_level is None:
            evaluation.missing_requirements = ["already at the highest level"]

        evaluation.can_promote = evaluation.structure_valid and next_level is not None

        self.logger.debug(
            "Promotion evaluated",
            extra={
                "user_id": user_id,
                "level": level.order,
                "direct_referrals": direct_count,
                "valid_branches": valid_count,
                "can_promote": evaluation.can_promote,
            },
        )
        return evaluation
