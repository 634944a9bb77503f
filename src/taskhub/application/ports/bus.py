from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class SendResult:
    topic: str
    partition: int
    offset: str


class MessageBroker(Protocol):
    async def send(
        self,
        topic: str,
        key: str,
        payload: str,
        headers: dict[str, str] | None = None,
    ) -> SendResult:
        """Append one message; resolves once the broker has accepted it."""
        ...
