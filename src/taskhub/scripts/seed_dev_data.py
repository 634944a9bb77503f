"""Seed development data: a couple of users, each with outbox events."""
from __future__ import annotations

import asyncio
import logging

from taskhub.application.exceptions import ConflictError
from taskhub.infrastructure.db.session import AsyncSessionLocal
from taskhub.infrastructure.db.uow import SqlAlchemyUoW
from taskhub.services import user_service

logger = logging.getLogger(__name__)

_USERS = [
    ("alice@example.com", "Alice", "Martin"),
    ("bob@example.com", "Bob", "Keller"),
]


async def seed() -> None:
    for email, first_name, last_name in _USERS:
        async with AsyncSessionLocal() as session:
            uow = SqlAlchemyUoW(session)
            try:
                user = await user_service.create_user(email, first_name, last_name, uow)
            except ConflictError:
                logger.info("User %s already present, skipping", email)
                continue
        logger.info("Seeded user %d (%s)", user.id, email)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
