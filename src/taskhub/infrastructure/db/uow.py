from __future__ import annotations

from contextlib import asynccontextmanager
from types import TracebackType
from typing import AsyncIterator, Self

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskhub.infrastructure.db.repositories.outbox import OutboxRepo
from taskhub.infrastructure.db.repositories.processed_event import ProcessedEventRepo
from taskhub.infrastructure.db.repositories.task import TaskRepo
from taskhub.infrastructure.db.repositories.user import UserRepo


class SqlAlchemyUoW:
    """Concrete Unit-of-Work backed by a single AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.outbox = OutboxRepo(session)
        self.processed_events = ProcessedEventRepo(session)
        self.users = UserRepo(session)
        self.tasks = TaskRepo(session)

    async def flush(self) -> None:
        await self._session.flush()

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self.rollback()


def uow_factory(session_maker: async_sessionmaker[AsyncSession]):
    """Build a zero-arg callable opening one UoW per ``async with``."""

    @asynccontextmanager
    async def _open() -> AsyncIterator[SqlAlchemyUoW]:
        async with session_maker() as session:
            async with SqlAlchemyUoW(session) as uow:
                yield uow

    return _open
