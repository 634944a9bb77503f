from __future__ import annotations

from typing import Protocol


class UserDirectory(Protocol):
    """Remote source of truth for whether a user exists."""

    async def user_exists(self, user_id: int) -> bool: ...
