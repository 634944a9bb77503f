from __future__ import annotations

from datetime import datetime
from typing import Protocol

from taskhub.domain.entities.user import User


class UserRepository(Protocol):
    async def get(self, user_id: int) -> User | None: ...

    async def exists(self, user_id: int) -> bool: ...

    async def get_by_email(self, email: str) -> User | None: ...

    async def add(
        self,
        email: str,
        first_name: str | None,
        last_name: str | None,
        now: datetime,
    ) -> User: ...

    async def update(
        self,
        user_id: int,
        first_name: str | None,
        last_name: str | None,
        now: datetime,
    ) -> User: ...

    async def delete(self, user_id: int) -> None: ...
