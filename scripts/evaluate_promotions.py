#!/usr/bin/env python3
"""Promote every user whose referral structure qualifies (cron entry point)."""

import asyncio

from loguru import logger

from affiliate.config.settings import settings
from affiliate.database import create_engine_and_session_maker
from affiliate.services.promotion_engine import PromotionEngine
from affiliate.store import SqlAlchemyStore
from affiliate.utils.logging import setup_logging


async def evaluate_promotions() -> None:
    """Run one promotion sweep."""
    setup_logging(settings)
    engine, session_maker = create_engine_and_session_maker(
        settings, use_null_pool=True
    )

    try:
        async with session_maker() as session:
            summary = await PromotionEngine(SqlAlchemyStore(session)).promote_all_eligible()
    finally:
        await engine.dispose()

    logger.success(
        f"Promotion sweep done: {summary.promoted} promoted, "
        f"{summary.evaluated} evaluated, {summary.failed} failed"
    )


if __name__ == "__main__":
    asyncio.run(evaluate_promotions())
