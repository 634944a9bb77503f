"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator

from fastapi import Depends

from taskhub.infrastructure.db.session import AsyncSessionLocal
from taskhub.infrastructure.db.uow import SqlAlchemyUoW, uow_factory

_open_uow = uow_factory(AsyncSessionLocal)


async def get_uow() -> AsyncIterator[SqlAlchemyUoW]:
    """One unit of work per request; rolled back if the handler raises."""
    async with _open_uow() as uow:
        yield uow


UoWDep = Annotated[SqlAlchemyUoW, Depends(get_uow)]
