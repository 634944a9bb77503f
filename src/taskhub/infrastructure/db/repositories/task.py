from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.application.exceptions import NotFoundError
from taskhub.domain.entities.task import Task
from taskhub.infrastructure.db.mappers import task as mapper
from taskhub.infrastructure.db.models.task import TaskModel


class TaskRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, task_id: int) -> Task | None:
        model = await self._session.get(TaskModel, task_id)
        return mapper.model_to_entity(model) if model else None

    async def add(
        self,
        user_id: int,
        title: str,
        description: str | None,
        status: str,
        now: datetime,
    ) -> Task:
        model = TaskModel(
            user_id=user_id,
            title=title,
            description=description,
            status=status,
            created_at=now,
            updated_at=now,
        )
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def update(
        self,
        task_id: int,
        title: str,
        description: str | None,
        status: str,
        now: datetime,
    ) -> Task:
        model = await self._session.get(TaskModel, task_id)
        if model is None:
            raise NotFoundError(f"Task {task_id} not found")
        model.title = title
        model.description = description
        model.status = status
        model.updated_at = now
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def delete(self, task_id: int) -> None:
        await self._session.execute(delete(TaskModel).where(TaskModel.id == task_id))

    async def delete_for_user(self, user_id: int) -> int:
        result = await self._session.execute(
            delete(TaskModel)
            .where(TaskModel.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
