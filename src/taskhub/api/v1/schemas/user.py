from __future__ import annotations

from pydantic import BaseModel


class UserExistsResponse(BaseModel):
    exists: bool
    id: int
