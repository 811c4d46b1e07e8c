"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from affiliate.models.base import Base
from affiliate.models.commission_payout import CommissionPayout
from affiliate.models.level import Level
from affiliate.models.promotion import Promotion
from affiliate.models.referral import Referral, ReferralStatus
from affiliate.models.user import User


__all__ = [
    "Base",
    "CommissionPayout",
    "Level",
    "Promotion",
    "Referral",
    "ReferralStatus",
    "User",
]
