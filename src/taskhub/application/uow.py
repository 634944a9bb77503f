from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Callable, Protocol

from taskhub.application.repositories.outbox import OutboxRepository
from taskhub.application.repositories.processed_event import ProcessedEventRepository
from taskhub.application.repositories.task import TaskRepository
from taskhub.application.repositories.user import UserRepository


class UnitOfWork(Protocol):
    outbox: OutboxRepository
    processed_events: ProcessedEventRepository
    users: UserRepository
    tasks: TaskRepository

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...


UoWFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]
