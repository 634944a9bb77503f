from __future__ import annotations

import json
from datetime import datetime
from typing import Any, TypeVar
from uuid import UUID

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from taskhub.application.exceptions import EventParseError, PayloadSerializationError

E = TypeVar("E", bound=BaseModel)


class _Encoder(json.JSONEncoder):
    def default(self, o: object) -> Any:
        if isinstance(o, UUID):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


def serialize_payload(payload: BaseModel | dict[str, Any] | str) -> str:
    """Turn an outbound payload into its wire string."""
    if isinstance(payload, str):
        return payload
    try:
        if isinstance(payload, BaseModel):
            return payload.model_dump_json(by_alias=True)
        return json.dumps(payload, cls=_Encoder)
    except (TypeError, ValueError) as exc:
        raise PayloadSerializationError(str(exc)) from exc


def deserialize_envelope(raw: str | bytes, model: type[E]) -> E:
    try:
        return model.model_validate_json(raw)
    except PydanticValidationError as exc:
        raise EventParseError(str(exc)) from exc
