from __future__ import annotations

from datetime import datetime
from typing import Protocol

from taskhub.domain.entities.outbox_event import OutboxEvent
from taskhub.domain.value_objects.enums import OutboxStatus


class OutboxRepository(Protocol):
    async def add(
        self,
        event_type: str,
        topic: str,
        payload: str,
        partition_key: str | None,
        created_at: datetime,
    ) -> OutboxEvent: ...

    async def get(self, event_id: int) -> OutboxEvent | None: ...

    async def claim_pending(self, batch_size: int, now: datetime) -> list[OutboxEvent]:
        """Lock and move up to ``batch_size`` PENDING rows to PROCESSING.

        Rows are taken oldest first and only when no older row with the same
        partition key is still PENDING or PROCESSING.
        """
        ...

    async def mark_published(self, event_id: int, now: datetime) -> bool: ...

    async def record_failure(
        self,
        event_id: int,
        retry_count: int,
        error_message: str,
        status: OutboxStatus,
    ) -> bool: ...

    async def release_stale(self, older_than: datetime, max_retries: int) -> int: ...

    async def delete_published_before(self, cutoff: datetime) -> int: ...
