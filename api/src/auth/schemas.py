"""Pydantic schemas for the authenticated identity."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from .permissions import UserRole


class AuthenticatedUser(BaseModel):
    """Identity extracted from a validated access token."""

    id: UUID = Field(..., description="User UUID (token subject)")
    email: str | None = Field(None, description="Email claim, if present")
    role: UserRole = Field(UserRole.USER, description="Role claim")
    issued_at: datetime | None = Field(None, description="Token issue time")
