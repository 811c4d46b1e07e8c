"""
Configuration package.

Settings, engine constants and the default level ladder.
"""

from affiliate.config.settings import Settings, settings


__all__ = ["Settings", "settings"]
