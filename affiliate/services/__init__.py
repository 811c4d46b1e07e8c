"""
Engine services.
"""

from affiliate.services.affiliate_facade import (
    AffiliateFacade,
    ForcePromotionResult,
    LevelSummary,
    TreeNode,
)
from affiliate.services.commission_calculator import (
    CommissionCalculator,
    CommissionDistribution,
    CommissionHistory,
    CommissionLine,
    CommissionReport,
    PotentialEarnings,
)
from affiliate.services.level_catalog import LevelCatalog
from affiliate.services.promotion_engine import (
    BatchPromotionSummary,
    LevelInfo,
    PromotionEngine,
    PromotionResult,
)
from affiliate.services.referral_graph import ReferralGraph, ReferralRecordResult
from affiliate.services.registration_service import (
    ReferralRegistrationService,
    RegistrationResult,
)
from affiliate.services.structure_evaluator import (
    BranchStatus,
    PromotionEvaluation,
    StructureEvaluator,
)

__all__ = [
    "AffiliateFacade",
    "BatchPromotionSummary",
    "BranchStatus",
    "CommissionCalculator",
    "CommissionDistribution",
    "CommissionHistory",
    "CommissionLine",
    "CommissionReport",
    "ForcePromotionResult",
    "LevelCatalog",
    "LevelInfo",
    "LevelSummary",
    "PotentialEarnings",
    "PromotionEngine",
    "PromotionEvaluation",
    "PromotionResult",
    "ReferralGraph",
    "ReferralRecordResult",
    "ReferralRegistrationService",
    "RegistrationResult",
    "StructureEvaluator",
    "TreeNode",
]
