from __future__ import annotations

from datetime import datetime
from typing import Protocol


class ProcessedEventRepository(Protocol):
    async def exists(self, event_key: str) -> bool: ...

    async def add(self, event_key: str, processed_at: datetime) -> None: ...
