"""Authentication module (JWT bearer tokens and role checks)."""

from .permissions import UserRole
from .schemas import AuthenticatedUser


__all__ = [
    "AuthenticatedUser",
    "UserRole",
]
