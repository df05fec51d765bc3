from __future__ import annotations

from relay_chat.domain.entities.user import User
from relay_chat.infrastructure.db.models.user import UserModel


def model_to_entity(model: UserModel) -> User:
    return User(id=model.id, username=model.username, password_hash=model.password_hash)
