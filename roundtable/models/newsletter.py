"""
roundtable/models/newsletter.py
Newsletter and membership models.
"""

from pydantic import BaseModel, Field, ConfigDict, field_validator
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

from roundtable.models.base import PatchModel


class Role(str, Enum):
    OWNER = "owner"
    MODERATOR = "moderator"
    MEMBER = "member"


WRITE_ROLES = frozenset({Role.OWNER, Role.MODERATOR})


class AccessMode(str, Enum):
    READ = "read"
    WRITE = "write"


class NewsletterSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    is_public: bool = True
    require_approval: bool = False
    max_members: Optional[int] = Field(default=100, ge=1)
    question_submission_required: bool = False


class Newsletter(BaseModel):
    """A named group whose members answer weekly questions."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    prompt: str = ""
    settings: NewsletterSettings = Field(default_factory=NewsletterSettings)
    is_active: bool = True
    created_at: datetime


class Membership(BaseModel):
    """A (newsletter, user) relationship carrying a role."""

    model_config = ConfigDict(frozen=True)

    id: str
    newsletter_id: str
    user_id: str
    role: Role
    joined_at: datetime
    is_active: bool = True
    answered_questions: List[str] = Field(default_factory=list)


class NewsletterMember(BaseModel):
    """Active membership joined to the member's profile."""

    id: str
    email: Optional[str] = None
    display_name: str = ""
    membership: Membership


class NewsletterCreateRequest(BaseModel):
    name: str = Field(max_length=200)
    description: str
    prompt: str
    settings: Optional[Dict[str, Any]] = None

    @field_validator("name", "description", "prompt")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Name, description, and prompt are required")
        return value


class NewsletterUpdateRequest(PatchModel):
    """Partial newsletter edit. Changing is_active is reserved for owners."""

    name: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = None
    prompt: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("Name is required")
        return value


class MemberAddRequest(BaseModel):
    user_id: str
    role: Role = Role.MEMBER

    @field_validator("user_id")
    @classmethod
    def user_id_required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("user_id is required")
        return value


class MemberRoleRequest(BaseModel):
    user_id: str
    role: Role
