"""Create the Scope of Work tables without running migrations.

Meant for local sqlite databases and throwaway environments; deployed
databases are managed with ``alembic upgrade head``.
"""

import asyncio
import logging

from src.config import settings
from src.core.logging import configure_logging
from src.database import Base, create_tables, engine

# Import models so they are registered in Base.metadata
from src.sow.models import ScopeOfWorkRecord  # noqa: F401

logger = logging.getLogger(__name__)


async def init_models():
    await create_tables(engine)
    logger.info(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")
    await engine.dispose()


if __name__ == "__main__":
    configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    asyncio.run(init_models())
