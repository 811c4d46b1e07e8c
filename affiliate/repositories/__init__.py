"""
Repositories.

Data access layer over an async SQLAlchemy session.
"""

from affiliate.repositories.base import BaseRepository
from affiliate.repositories.commission_payout_repository import (
    CommissionPayoutRepository,
)
from affiliate.repositories.level_repository import LevelRepository
from affiliate.repositories.promotion_repository import PromotionRepository
from affiliate.repositories.referral_repository import ReferralRepository
from affiliate.repositories.user_repository import UserRepository


__all__ = [
    "BaseRepository",
    "CommissionPayoutRepository",
    "LevelRepository",
    "PromotionRepository",
    "ReferralRepository",
    "UserRepository",
]
