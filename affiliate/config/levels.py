"""
Default level ladder.

Single source of truth for the levels seeded into a fresh database.
Commission rates are fractions of the purchase amount (0.15 = 15%).
"""

from decimal import Decimal
from typing import NamedTuple


class LevelDefinition(NamedTuple):
    """Seed definition of one ladder level."""

    order: int  # Position on the ladder, starts at 1
    name: str
    commission_rate: Decimal
    min_direct_referrals: int
    min_indirect_referrals: int
    color: str
    icon: str
    requirements_description: str


DEFAULT_LEVELS: tuple[LevelDefinition, ...] = (
    LevelDefinition(
        order=1,
        name="Visionario Primeros 3",
        commission_rate=Decimal("0.15"),
        min_direct_referrals=3,
        min_indirect_referrals=0,
        color="#3B82F6",
        icon="👁️",
        requirements_description="Invite your first 3 direct affiliates",
    ),
    LevelDefinition(
        order=2,
        name="Mentor 3 de 3",
        commission_rate=Decimal("0.20"),
        min_direct_referrals=3,
        min_indirect_referrals=9,
        color="#10B981",
        icon="🎓",
        requirements_description=(
            "Each of your first 3 direct affiliates invites at least 3 people"
        ),
    ),
    LevelDefinition(
        order=3,
        name="Guía",
        commission_rate=Decimal("0.25"),
        min_direct_referrals=3,
        min_indirect_referrals=27,
        color="#8B5CF6",
        icon="🧭",
        requirements_description="Build a solid network three levels deep",
    ),
    LevelDefinition(
        order=4,
        name="Master",
        commission_rate=Decimal("0.30"),
        min_direct_referrals=3,
        min_indirect_referrals=81,
        color="#F59E0B",
        icon="👑",
        requirements_description="Master network building with an advanced structure",
    ),
    LevelDefinition(
        order=5,
        name="Guerrero",
        commission_rate=Decimal("0.32"),
        min_direct_referrals=3,
        min_indirect_referrals=243,
        color="#EF4444",
        icon="⚔️",
        requirements_description="Keep growing your network and the networks below it",
    ),
    LevelDefinition(
        order=6,
        name="Gladiador",
        commission_rate=Decimal("0.35"),
        min_direct_referrals=3,
        min_indirect_referrals=729,
        color="#DC2626",
        icon="🛡️",
        requirements_description="Networking with strength and determination",
    ),
    LevelDefinition(
        order=7,
        name="Líder",
        commission_rate=Decimal("0.38"),
        min_direct_referrals=3,
        min_indirect_referrals=2187,
        color="#7C3AED",
        icon="🚀",
        requirements_description="Lead your organization to new heights",
    ),
    LevelDefinition(
        order=8,
        name="Oro",
        commission_rate=Decimal("0.40"),
        min_direct_referrals=3,
        min_indirect_referrals=6561,
        color="#D97706",
        icon="🥇",
        requirements_description="Reach the golden level of network building",
    ),
    LevelDefinition(
        order=9,
        name="Platino",
        commission_rate=Decimal("0.42"),
        min_direct_referrals=3,
        min_indirect_referrals=19683,
        color="#6B7280",
        icon="🥈",
        requirements_description="Go beyond gold and set new standards",
    ),
    LevelDefinition(
        order=10,
        name="Corona",
        commission_rate=Decimal("0.45"),
        min_direct_referrals=3,
        min_indirect_referrals=59049,
        color="#F59E0B",
        icon="👑",
        requirements_description="Reign over a vast network of committed visionaries",
    ),
    LevelDefinition(
        order=11,
        name="Diamante",
        commission_rate=Decimal("0.48"),
        min_direct_referrals=3,
        min_indirect_referrals=177147,
        color="#06B6D4",
        icon="💎",
        requirements_description="Shine with the strength of a diamond",
    ),
    LevelDefinition(
        order=12,
        name="Águila Real",
        commission_rate=Decimal("0.50"),
        min_direct_referrals=3,
        min_indirect_referrals=531441,
        color="#059669",
        icon="🦅",
        requirements_description="Fly highest as the supreme leader of the network",
    ),
)


def get_level_definition(order: int) -> LevelDefinition | None:
    """
    Get seed definition by ladder order.

    Args:
        order: Ladder position (1-12)

    Returns:
        Level definition or None if not found
    """
    for definition in DEFAULT_LEVELS:
        if definition.order == order:
            return definition
    return None


def validate_ladder(definitions: tuple[LevelDefinition, ...] | list[LevelDefinition]) -> None:
    """
    Validate a ladder before seeding.

    Orders must be unique and start at 1; rates must be within [0, 1].

    Raises:
        ValueError: If the ladder is malformed
    """
    orders = [d.order for d in definitions]
    if len(set(orders)) != len(orders):
        raise ValueError("Level orders must be unique")
    if orders and min(orders) != 1:
        raise ValueError("Level ladder must start at order 1")
    for definition in definitions:
        if not Decimal("0") <= definition.commission_rate <= Decimal("1"):
            raise ValueError(
                f"Commission rate of level {definition.order} must be within [0, 1]"
            )
