from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.application.exceptions import NotFoundError
from taskhub.domain.entities.user import User
from taskhub.infrastructure.db.mappers import user as mapper
from taskhub.infrastructure.db.models.user import UserModel


class UserRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: int) -> User | None:
        model = await self._session.get(UserModel, user_id)
        return mapper.model_to_entity(model) if model else None

    async def exists(self, user_id: int) -> bool:
        result = await self._session.execute(select(UserModel.id).where(UserModel.id == user_id))
        return result.scalar_one_or_none() is not None

    async def get_by_email(self, email: str) -> User | None:
        result = await self._session.execute(select(UserModel).where(UserModel.email == email))
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def add(
        self,
        email: str,
        first_name: str | None,
        last_name: str | None,
        now: datetime,
    ) -> User:
        model = UserModel(
            email=email,
            first_name=first_name,
            last_name=last_name,
            created_at=now,
            updated_at=now,
        )
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def update(
        self,
        user_id: int,
        first_name: str | None,
        last_name: str | None,
        now: datetime,
    ) -> User:
        model = await self._session.get(UserModel, user_id)
        if model is None:
            raise NotFoundError(f"User {user_id} not found")
        model.first_name = first_name
        model.last_name = last_name
        model.updated_at = now
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def delete(self, user_id: int) -> None:
        await self._session.execute(delete(UserModel).where(UserModel.id == user_id))
