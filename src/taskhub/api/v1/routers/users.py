from __future__ import annotations

from fastapi import APIRouter

from taskhub.api.deps import UoWDep
from taskhub.api.v1.schemas.user import UserExistsResponse
from taskhub.services import user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{user_id}/exists", response_model=UserExistsResponse)
async def user_exists(user_id: int, uow: UoWDep) -> UserExistsResponse:
    """Public existence check used by the tasks service."""
    exists = await user_service.user_exists(user_id, uow)
    return UserExistsResponse(exists=exists, id=user_id)
