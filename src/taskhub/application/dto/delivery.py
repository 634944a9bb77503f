from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class Delivery:
    """One message as handed over by the broker consumer."""

    topic: str
    partition: int
    offset: str
    payload: str
    key: str | None = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def event_key(self) -> str:
        return f"{self.topic}-{self.partition}-{self.offset}"
