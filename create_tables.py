"""
create_tables.py
----------------
One-shot script to create all directory tables.
Use this for quick setup. For production migrations, use Alembic instead.

Usage:
    python create_tables.py
"""

import asyncio

from iamsql.core.config import settings
from iamsql.core.logging import configure_logging, get_logger
from iamsql.db.session import create_engine
from iamsql.models import Base  # Imports all models so metadata is populated

logger = get_logger(__name__)


async def create_all_tables() -> None:
    engine = create_engine(settings.DATABASE_URL, echo=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    logger.info("All tables created", tables=sorted(Base.metadata.tables))


if __name__ == "__main__":
    configure_logging()
    asyncio.run(create_all_tables())
