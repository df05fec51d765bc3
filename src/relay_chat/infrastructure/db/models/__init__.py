"""Import all models so Base.metadata knows every table."""
from relay_chat.infrastructure.db.models.message import MessageModel
from relay_chat.infrastructure.db.models.user import UserModel

__all__ = [
    "MessageModel",
    "UserModel",
]
