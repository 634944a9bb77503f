from __future__ import annotations

from taskhub.domain.entities.task import Task
from taskhub.infrastructure.db.models.task import TaskModel


def model_to_entity(model: TaskModel) -> Task:
    return Task(
        id=model.id,
        user_id=model.user_id,
        title=model.title,
        description=model.description,
        status=model.status,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )
