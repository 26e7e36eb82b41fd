import asyncio
import logging

from config.settings import settings
from core.db import build_engine, create_all
from core.logging import configure_logging

logger = logging.getLogger("create_db_schema")


async def main():
    """
    One-time script to create all tables in the configured database.
    Uses a temporary async engine built from settings.DATABASE_URL.
    """
    db_url = settings.DATABASE_URL
    if not db_url or db_url.startswith("disabled"):
        raise RuntimeError(f"DATABASE_URL is not configured correctly: {db_url}")

    engine = build_engine(db_url)
    try:
        await create_all(engine)
    finally:
        await engine.dispose()
    logger.info("Database schema created/updated successfully.")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(main())
