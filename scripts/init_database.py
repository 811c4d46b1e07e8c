#!/usr/bin/env python3
"""Initialize database tables and seed the default level ladder."""

import asyncio

from loguru import logger

from affiliate.config.settings import settings
from affiliate.database import create_engine_and_session_maker
from affiliate.models import Base
from affiliate.services.level_catalog import LevelCatalog
from affiliate.store import SqlAlchemyStore
from affiliate.utils.logging import setup_logging


async def init_database() -> None:
    """Create all database tables and missing levels."""
    setup_logging(settings)
    logger.info("Connecting to database...")
    engine, session_maker = create_engine_and_session_maker(
        settings, use_null_pool=True
    )

    try:
        async with engine.begin() as conn:
            logger.info("Creating tables (checkfirst=True)...")
            await conn.run_sync(
                Base.metadata.create_all,
                checkfirst=True
            )

        async with session_maker() as session:
            created = await LevelCatalog(SqlAlchemyStore(session)).seed()
            logger.info(f"Seeded {len(created)} levels")
    finally:
        await engine.dispose()

    logger.success("Database initialized successfully!")


if __name__ == "__main__":
    asyncio.run(init_database())
