from __future__ import annotations

from datetime import datetime
from typing import Protocol

from taskhub.domain.entities.task import Task


class TaskRepository(Protocol):
    async def get(self, task_id: int) -> Task | None: ...

    async def add(
        self,
        user_id: int,
        title: str,
        description: str | None,
        status: str,
        now: datetime,
    ) -> Task: ...

    async def update(
        self,
        task_id: int,
        title: str,
        description: str | None,
        status: str,
        now: datetime,
    ) -> Task: ...

    async def delete(self, task_id: int) -> None: ...

    async def delete_for_user(self, user_id: int) -> int: ...
