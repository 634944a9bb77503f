from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from taskhub.domain.value_objects.enums import OutboxStatus


@dataclass(frozen=True, slots=True)
class OutboxEvent:
    id: int
    event_type: str
    topic: str
    payload: str
    partition_key: str | None
    status: OutboxStatus
    created_at: datetime
    processed_at: datetime | None
    retry_count: int
    error_message: str | None

    @property
    def routing_key(self) -> str:
        """Key the broker partitions on; the row id when no key was given."""
        return self.partition_key if self.partition_key is not None else str(self.id)
