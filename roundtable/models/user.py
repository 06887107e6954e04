from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field

from roundtable.models.base import PatchModel


class AuthenticatedUser(BaseModel):
    """Identity extracted from a verified bearer token."""

    model_config = ConfigDict(frozen=True)

    uid: str
    email: Optional[str] = None
    name: Optional[str] = None


class UserPreferences(BaseModel):
    email_notifications: bool = True
    timezone: str = "UTC"


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: Optional[str] = None
    display_name: str = ""
    is_active: bool = True
    is_admin: bool = False
    preferences: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    def public_profile(self) -> dict:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "email": self.email,
            "is_active": self.is_active,
        }


class UserProfileRequest(BaseModel):
    """Body for POST /api/users (first-login profile setup)."""

    display_name: Optional[str] = Field(default=None, max_length=200)
    email: Optional[str] = None
    preferences: Optional[UserPreferences] = None


class UserUpdateRequest(PatchModel):
    """Self-service profile edit."""

    display_name: Optional[str] = Field(default=None, max_length=200)
    preferences: Optional[Dict[str, Any]] = None


class AdminUserUpdate(UserUpdateRequest):
    is_active: Optional[bool] = None
    is_admin: Optional[bool] = None
