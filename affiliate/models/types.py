"""
Standard type definitions for database models.

Provides consistent types for monetary and rate fields across all models.
"""

from sqlalchemy import DECIMAL

# Standard money type for amounts, earnings and payouts
# Precision: 18 digits total, 8 after decimal point
# Range: up to 9,999,999,999.99999999
MoneyType = DECIMAL(18, 8)

# Commission rate as a fraction of the purchase amount
# Precision: 5 digits total, 4 after decimal point
# Range: 0.0000 to 1.0000 (enforced by check constraint)
RateType = DECIMAL(5, 4)
