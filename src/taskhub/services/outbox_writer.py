"""Append events to the outbox inside the caller's unit of work."""
from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel

from taskhub.application.exceptions import PayloadSerializationError
from taskhub.application.ports.clock import utcnow
from taskhub.application.uow import UnitOfWork
from taskhub.domain.entities.outbox_event import OutboxEvent
from taskhub.infrastructure.bus.serializer import serialize_payload

logger = logging.getLogger(__name__)


async def append(
    event_type: str,
    topic: str,
    payload: BaseModel | dict[str, Any] | str,
    partition_key: str | None,
    uow: UnitOfWork,
) -> OutboxEvent | None:
    """Stage one PENDING outbox row; the caller commits it with its own changes.

    A payload that cannot be serialized is logged and dropped (returns None)
    so the business transaction still goes through. The event is lost in
    that case.
    """
    try:
        raw = serialize_payload(payload)
    except PayloadSerializationError as exc:
        logger.error(
            "Failed to serialize %s event for topic %s, event dropped: %s",
            event_type, topic, exc.detail,
        )
        return None

    event = await uow.outbox.add(
        event_type,
        topic,
        raw,
        partition_key,
        utcnow(),
    )
    logger.debug("Outbox event %d queued: %s -> %s", event.id, event_type, topic)
    return event
