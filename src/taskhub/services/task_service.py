from __future__ import annotations

import logging

from taskhub.application.dto.events import TaskEvent
from taskhub.application.exceptions import NotFoundError
from taskhub.application.ports.clock import utcnow
from taskhub.application.uow import UnitOfWork
from taskhub.config import settings
from taskhub.domain.entities.task import Task
from taskhub.domain.value_objects.enums import ChangeKind, TaskStatus
from taskhub.infrastructure.metrics import operation_duration_seconds, task_operations_total
from taskhub.services import outbox_writer
from taskhub.services.existence_cache import UserExistenceCache

logger = logging.getLogger(__name__)


async def _emit(kind: ChangeKind, task: Task, uow: UnitOfWork) -> None:
    await outbox_writer.append(
        f"task.{kind.value.lower()}",
        settings.TASK_EVENTS_TOPIC,
        TaskEvent(
            event_type=kind.value,
            task_id=task.id,
            user_id=task.user_id,
            title=task.title,
            description=task.description,
            status=task.status,
        ),
        str(task.id),
        uow,
    )


def _timed(operation: str):
    return operation_duration_seconds.labels(entity="task", operation=operation).time()


async def create_task(
    user_id: int,
    title: str,
    description: str | None,
    users: UserExistenceCache,
    uow: UnitOfWork,
) -> Task:
    """Create a task for an existing user.

    Raises UserNotFoundError when the users service says the owner is gone.
    """
    with _timed("created"):
        await users.exists(user_id)

        task = await uow.tasks.add(
            user_id, title, description, TaskStatus.TODO.value, utcnow(),
        )
        await _emit(ChangeKind.CREATED, task, uow)
        await uow.commit()

    task_operations_total.labels(operation="created").inc()
    logger.info("Task created: task_id=%d user_id=%d", task.id, user_id)
    return task


async def update_task(
    task_id: int,
    title: str,
    description: str | None,
    status: TaskStatus,
    uow: UnitOfWork,
) -> Task:
    with _timed("updated"):
        if await uow.tasks.get(task_id) is None:
            raise NotFoundError(f"Task {task_id} not found")

        task = await uow.tasks.update(
            task_id, title, description, status.value, utcnow(),
        )
        await _emit(ChangeKind.UPDATED, task, uow)
        await uow.commit()

    task_operations_total.labels(operation="updated").inc()
    logger.info("Task updated: task_id=%d", task_id)
    return task


async def delete_task(task_id: int, uow: UnitOfWork) -> None:
    with _timed("deleted"):
        task = await uow.tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")

        await uow.tasks.delete(task_id)
        await _emit(ChangeKind.DELETED, task, uow)
        await uow.commit()

    task_operations_total.labels(operation="deleted").inc()
    logger.info("Task deleted: task_id=%d", task_id)
