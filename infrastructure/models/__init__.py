"""Infrastructure models package exports."""
from .base import Base, metadata
from .user import UserModel, users_id_seq

__all__ = [
    "Base",
    "metadata",
    "UserModel",
    "users_id_seq",
]
