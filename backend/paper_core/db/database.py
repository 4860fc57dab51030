"""
Paper Trading Core - Database Connection
"""
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from loguru import logger

from paper_core.config import settings


# Base class for models
Base = declarative_base()


def create_engine(url: str = None, echo: bool = None) -> AsyncEngine:
    """Create an async engine; SQLite URLs skip the connection pool sizing."""
    url = url or settings.DATABASE_URL
    echo = settings.DATABASE_ECHO if echo is None else echo

    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo)

    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def create_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Default engine and session factory built from settings
engine = create_engine()
async_session_maker = create_session_maker(engine)


async def init_db(bind: AsyncEngine = None):
    """Initialize database tables."""
    bind = bind or engine
    async with bind.begin() as conn:
        # Import all models here to ensure they're registered
        from paper_core.db.models import fill, grid  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created/verified")
