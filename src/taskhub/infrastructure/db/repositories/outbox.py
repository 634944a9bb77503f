from __future__ import annotations

import dataclasses
from datetime import datetime

from sqlalchemy import case, delete, exists, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from taskhub.domain.entities.outbox_event import OutboxEvent
from taskhub.domain.value_objects.enums import OutboxStatus
from taskhub.infrastructure.db.mappers import outbox as mapper
from taskhub.infrastructure.db.models.outbox import OutboxEventModel

_IN_FLIGHT = (OutboxStatus.PENDING.value, OutboxStatus.PROCESSING.value)
STALE_ERROR = "Send did not complete before the row went stale"


class OutboxRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(
        self,
        event_type: str,
        topic: str,
        payload: str,
        partition_key: str | None,
        created_at: datetime,
    ) -> OutboxEvent:
        model = OutboxEventModel(
            event_type=event_type,
            topic=topic,
            payload=payload,
            partition_key=partition_key,
            status=OutboxStatus.PENDING.value,
            created_at=created_at,
            retry_count=0,
        )
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def get(self, event_id: int) -> OutboxEvent | None:
        model = await self._session.get(OutboxEventModel, event_id)
        return mapper.model_to_entity(model) if model else None

    async def claim_pending(self, batch_size: int, now: datetime) -> list[OutboxEvent]:
        earlier = aliased(OutboxEventModel)
        has_unfinished_predecessor = exists().where(
            earlier.partition_key == OutboxEventModel.partition_key,
            earlier.id < OutboxEventModel.id,
            earlier.status.in_(_IN_FLIGHT),
        )
        stmt = (
            select(OutboxEventModel)
            .where(
                OutboxEventModel.status == OutboxStatus.PENDING.value,
                or_(
                    OutboxEventModel.partition_key.is_(None),
                    ~has_unfinished_predecessor,
                ),
            )
            .order_by(OutboxEventModel.created_at.asc(), OutboxEventModel.id.asc())
            .limit(batch_size)
            .with_for_update(skip_locked=True, of=OutboxEventModel)
        )
        result = await self._session.execute(stmt)
        rows = result.scalars().all()
        if not rows:
            return []

        ids = [r.id for r in rows]
        await self._session.execute(
            update(OutboxEventModel)
            .where(OutboxEventModel.id.in_(ids))
            .values(status=OutboxStatus.PROCESSING.value, processed_at=now)
            .execution_options(synchronize_session=False)
        )
        await self._session.flush()

        return [
            dataclasses.replace(
                mapper.model_to_entity(r),
                status=OutboxStatus.PROCESSING,
                processed_at=now,
            )
            for r in rows
        ]

    async def mark_published(self, event_id: int, now: datetime) -> bool:
        stmt = (
            update(OutboxEventModel)
            .where(
                OutboxEventModel.id == event_id,
                OutboxEventModel.status == OutboxStatus.PROCESSING.value,
            )
            .values(status=OutboxStatus.PUBLISHED.value, processed_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def record_failure(
        self,
        event_id: int,
        retry_count: int,
        error_message: str,
        status: OutboxStatus,
    ) -> bool:
        stmt = (
            update(OutboxEventModel)
            .where(
                OutboxEventModel.id == event_id,
                OutboxEventModel.status == OutboxStatus.PROCESSING.value,
            )
            .values(
                status=status.value,
                retry_count=retry_count,
                error_message=error_message,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def release_stale(self, older_than: datetime, max_retries: int) -> int:
        """Release stuck PROCESSING rows; each release counts as one attempt."""
        attempts = OutboxEventModel.retry_count + 1
        exhausted = attempts >= max_retries
        stmt = (
            update(OutboxEventModel)
            .where(
                OutboxEventModel.status == OutboxStatus.PROCESSING.value,
                OutboxEventModel.processed_at < older_than,
            )
            .values(
                status=case(
                    (exhausted, OutboxStatus.FAILED.value),
                    else_=OutboxStatus.PENDING.value,
                ),
                retry_count=attempts,
                error_message=case(
                    (exhausted, STALE_ERROR),
                    else_=OutboxEventModel.error_message,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def delete_published_before(self, cutoff: datetime) -> int:
        stmt = (
            delete(OutboxEventModel)
            .where(
                OutboxEventModel.status == OutboxStatus.PUBLISHED.value,
                OutboxEventModel.processed_at < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount
