"""
Affiliate ladder engine.

Referral graph, 3x3 promotion ladder and multi-level commission distribution.
"""

__version__ = "0.1.0"
