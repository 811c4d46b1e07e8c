"""
Level catalog.

Ordered ladder of levels: lookup by order, next level resolution and
seeding of the default ladder.
"""

from affiliate.config.levels import DEFAULT_LEVELS, LevelDefinition, validate_ladder
from affiliate.models.level import Level
from affiliate.services.base_service import BaseService, transactional
from affiliate.utils.exceptions import NotFoundError


class LevelCatalog(BaseService):
    """Read access to the ladder plus idempotent seeding."""

    async def get(self, level_id: int) -> Level:
        """
        Get level by ID.

        Raises:
            NotFoundError: If the level does not exist
        """
        level = await self.store.get_level(level_id)
        if level is None:
            raise NotFoundError(f"Level {level_id} not found")
        return level

    async def get_first(self) -> Level:
        """
        Get the entry level (order 1).

        Raises:
            NotFoundError: If the ladder is empty
        """
        level = await self.store.get_level_by_order(1)
        if level is None:
            raise NotFoundError("Level ladder has no entry level (order 1)")
        return level

    async def get_next(self, level: Level) -> Level | None:
        """
        Get the level right above the given one.

        Args:
            level: Current level

        Returns:
            Level with order + 1, or None at the top of the ladder
        """
        return await self.store.get_level_by_order(level.order + 1)

    async def list_levels(self) -> list[Level]:
        """All levels, lowest order first."""
        return await self.store.list_levels()

    @transactional
    async def seed(
        self,
        definitions: tuple[LevelDefinition, ...] | list[LevelDefinition] = DEFAULT_LEVELS,
    ) -> list[Level]:
        """
        Create missing levels of a ladder.

        Levels whose order already exists are left untouched, so seeding
        twice is harmless.

        Args:
            definitions: Ladder definition

        Returns:
            Newly created levels
        """
        validate_ladder(definitions)

        created = []
        for definition in definitions:
            if await self.store.get_level_by_order(definition.order):
                continue
            level = await self.store.create_level(**definition._asdict())
            created.append(level)

        self.logger.info(
            "Level ladder seeded",
            extra={"created": len(created), "defined": len(definitions)},
        )
        return created
