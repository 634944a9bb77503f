from __future__ import annotations

from taskhub.domain.entities.outbox_event import OutboxEvent
from taskhub.domain.value_objects.enums import OutboxStatus
from taskhub.infrastructure.db.models.outbox import OutboxEventModel


def model_to_entity(model: OutboxEventModel) -> OutboxEvent:
    return OutboxEvent(
        id=model.id,
        event_type=model.event_type,
        topic=model.topic,
        payload=model.payload,
        partition_key=model.partition_key,
        status=OutboxStatus(model.status),
        created_at=model.created_at,
        processed_at=model.processed_at,
        retry_count=model.retry_count,
        error_message=model.error_message,
    )
