from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.infrastructure.db.models.processed_event import ProcessedEventModel


class ProcessedEventRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def exists(self, event_key: str) -> bool:
        stmt = select(ProcessedEventModel.id).where(ProcessedEventModel.event_key == event_key)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def add(self, event_key: str, processed_at: datetime) -> None:
        self._session.add(ProcessedEventModel(event_key=event_key, processed_at=processed_at))
        await self._session.flush()
