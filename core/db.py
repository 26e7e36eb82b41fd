"""
Async database engine and session management.

Purpose:
- Create SQLAlchemy async engine (aiomysql in production, aiosqlite in tests)
- Provide async session factory for dependency injection
- Provide Base declarative class for ORM models

Production notes:
- Use connection pooling with appropriate pool_size and max_overflow
- The seat_claims unique constraint is what makes seat claims safe across
  processes; never drop it in a migration.
"""
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from config.settings import settings
import logging
from typing import Optional

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given URL."""
    return create_async_engine(url, echo=echo, future=True)


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables registered on Base (dev/test convenience; use Alembic in prod)."""
    # ensure models are imported so tables are registered
    from models import db_models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# When DATABASE_URL is "disabled", do not create an engine at all.
engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker[AsyncSession]] = None

if settings.DATABASE_URL and settings.DATABASE_URL != "disabled":
    engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    async_session_maker = build_session_maker(engine)
    logger.info("Async DB engine created for %s", engine.url.render_as_string(hide_password=True))
else:
    logger.warning("DATABASE_URL is 'disabled' - DB engine will not be created.")

