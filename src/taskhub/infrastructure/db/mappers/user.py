from __future__ import annotations

from taskhub.domain.entities.user import User
from taskhub.infrastructure.db.models.user import UserModel


def model_to_entity(model: UserModel) -> User:
    return User(
        id=model.id,
        email=model.email,
        first_name=model.first_name,
        last_name=model.last_name,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )
