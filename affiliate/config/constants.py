"""
Engine constants.

Structural rule parameters and safety bounds for graph traversal.
"""

from decimal import Decimal

# ========================================================================
# 3x3 STRUCTURE RULE
# ========================================================================

# Direct referrals required before the structure is inspected
REQUIRED_DIRECT_REFERRALS = 3

# Active direct referrals each of the first three branches needs
REQUIRED_SECOND_LEVEL_REFERRALS = 3

REQUIRED_STRUCTURE_DESCRIPTION = (
    "3 direct referrals + 9 indirect referrals (3x3)"
)

# ========================================================================
# TRAVERSAL BOUNDS
# ========================================================================

# Hard cap for breadth-first subtree traversal, whatever the caller asks
MAX_SUBTREE_DEPTH = 10

# Unbounded ancestor walks longer than this mean the forest is corrupted
MAX_ANCESTOR_WALK = 50

# How far up the referrer chain the cycle guard looks before giving up
MAX_CYCLE_CHECK_DEPTH = 500

# Default depth of the referral tree returned to the web layer
DEFAULT_STRUCTURE_DEPTH = 3

# ========================================================================
# COMMISSIONS
# ========================================================================

DEFAULT_COMMISSION_MAX_LEVELS = 3
MAX_COMMISSION_LEVELS = 10

# Matches DECIMAL(18, 8) money columns
MONEY_QUANTUM = Decimal("0.00000001")

# ========================================================================
# PROMOTION REASONS
# ========================================================================

REASON_AUTOMATIC = "automatic promotion"
REASON_ADMIN_OVERRIDE = "administrative override"
REASON_INITIAL_ASSIGNMENT = "initial assignment"

# Number of promotion records shown with the level info
PROMOTION_HISTORY_LIMIT = 5
