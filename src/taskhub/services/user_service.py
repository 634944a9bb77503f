from __future__ import annotations

import logging

from taskhub.application.dto.events import UserEvent
from taskhub.application.exceptions import ConflictError, NotFoundError
from taskhub.application.ports.clock import utcnow
from taskhub.application.uow import UnitOfWork
from taskhub.config import settings
from taskhub.domain.entities.user import User
from taskhub.domain.value_objects.enums import ChangeKind
from taskhub.infrastructure.metrics import operation_duration_seconds, user_operations_total
from taskhub.services import outbox_writer

logger = logging.getLogger(__name__)


async def _emit(kind: ChangeKind, user_id: int, email: str, uow: UnitOfWork) -> None:
    await outbox_writer.append(
        f"user.{kind.value.lower()}",
        settings.USER_EVENTS_TOPIC,
        UserEvent(event_type=kind.value, user_id=user_id, email=email),
        str(user_id),
        uow,
    )


def _timed(operation: str):
    return operation_duration_seconds.labels(entity="user", operation=operation).time()


async def create_user(
    email: str,
    first_name: str | None,
    last_name: str | None,
    uow: UnitOfWork,
) -> User:
    with _timed("created"):
        if await uow.users.get_by_email(email) is not None:
            raise ConflictError(f"User with email {email} already exists")

        user = await uow.users.add(email, first_name, last_name, utcnow())
        await _emit(ChangeKind.CREATED, user.id, user.email, uow)
        await uow.commit()

    user_operations_total.labels(operation="created").inc()
    logger.info("User created: user_id=%d", user.id)
    return user


async def update_user(
    user_id: int,
    first_name: str | None,
    last_name: str | None,
    uow: UnitOfWork,
) -> User:
    with _timed("updated"):
        if await uow.users.get(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")

        user = await uow.users.update(user_id, first_name, last_name, utcnow())
        await _emit(ChangeKind.UPDATED, user.id, user.email, uow)
        await uow.commit()

    user_operations_total.labels(operation="updated").inc()
    logger.info("User updated: user_id=%d", user.id)
    return user


async def delete_user(user_id: int, uow: UnitOfWork) -> None:
    with _timed("deleted"):
        user = await uow.users.get(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        await uow.users.delete(user_id)
        await _emit(ChangeKind.DELETED, user.id, user.email, uow)
        await uow.commit()

    user_operations_total.labels(operation="deleted").inc()
    logger.info("User deleted: user_id=%d", user_id)


async def user_exists(user_id: int, uow: UnitOfWork) -> bool:
    return await uow.users.exists(user_id)
