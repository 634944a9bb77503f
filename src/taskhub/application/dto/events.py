"""Wire envelopes exchanged on the user/task topics."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from taskhub.application.ports.clock import utcnow
from taskhub.domain.value_objects.enums import ChangeKind


class _Envelope(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    event_type: str
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def kind(self) -> ChangeKind | None:
        """Accepts both ``DELETED`` and ``user.deleted`` style tags."""
        tag = self.event_type.rsplit(".", 1)[-1].upper()
        try:
            return ChangeKind(tag)
        except ValueError:
            return None


class UserEvent(_Envelope):
    user_id: int
    email: str | None = None


class TaskEvent(_Envelope):
    task_id: int
    user_id: int
    title: str | None = None
    description: str | None = None
    status: str | None = None
