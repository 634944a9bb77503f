"""Create the outbox, ledger, users and tasks tables if missing."""
from __future__ import annotations

import asyncio
import logging

from taskhub.infrastructure.db.base import Base
from taskhub.infrastructure.db import models  # noqa: F401
from taskhub.infrastructure.db.session import engine

logger = logging.getLogger(__name__)


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Created tables: %s", ", ".join(sorted(Base.metadata.tables)))
    await engine.dispose()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(init_db())


if __name__ == "__main__":
    main()
