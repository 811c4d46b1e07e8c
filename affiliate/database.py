"""Database engine and session factory."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from affiliate.config.settings import Settings, settings as default_settings


def create_engine(settings: Settings | None = None, use_null_pool: bool = False) -> AsyncEngine:
    """
    Create the async engine.

    Args:
        settings: Settings to read the database URL from
        use_null_pool: Disable pooling (one-shot scripts and workers)
    """
    settings = settings or default_settings
    kwargs = {"poolclass": NullPool} if use_null_pool else {"pool_pre_ping": True}
    return create_async_engine(
        settings.async_database_url,
        echo=settings.database_echo,
        **kwargs,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session maker bound to an engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


def create_engine_and_session_maker(
    settings: Settings | None = None, use_null_pool: bool = False
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create an engine and its session maker."""
    engine = create_engine(settings, use_null_pool=use_null_pool)
    return engine, create_session_maker(engine)
