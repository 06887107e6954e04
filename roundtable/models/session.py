"""
roundtable/models/session.py
Weekly session, question assignment and response models.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from roundtable.models.base import PatchModel


class SessionStatus(str, Enum):
    """Session lifecycle: active -> pending -> completed"""

    ACTIVE = "active"
    PENDING = "pending"
    COMPLETED = "completed"


class Session(BaseModel):
    """One week's instance of a newsletter's question/answer cycle."""

    model_config = ConfigDict(frozen=True)

    id: str
    newsletter_id: str
    week_identifier: str
    week_start: datetime
    week_end: datetime
    status: SessionStatus = SessionStatus.ACTIVE
    newsletter_sent: bool = False
    participant_count: int = 0
    generated_newsletter: Optional[str] = None
    created_at: datetime


class QuestionAssignment(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    session_id: str
    newsletter_id: str
    user_id: str
    question_id: str
    assigned_at: datetime
    answered: bool = False


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    newsletter_id: str
    session_id: str
    user_id: str
    question_id: str
    response: str
    submitted_question: Optional[str] = None
    word_count: int
    is_public: bool = False
    submitted_at: datetime


class WeeklyAssignmentSummary(BaseModel):
    """Week-keyed record of which question each user got."""

    model_config = ConfigDict(frozen=True)

    newsletter_id: str
    week_id: str
    assignments: Dict[str, str] = Field(default_factory=dict, description="user_id -> question_id")
    exhausted_users: int = 0
    created_at: datetime


class SessionCreateRequest(BaseModel):
    newsletter_id: str
    week_identifier: str = Field(max_length=20)
    week_start: Optional[datetime] = None
    week_end: Optional[datetime] = None

    @field_validator("newsletter_id", "week_identifier")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Newsletter ID and week identifier are required")
        return value


class SessionUpdateRequest(PatchModel):
    NULLABLE = ("generated_newsletter",)

    week_identifier: Optional[str] = Field(default=None, max_length=20)
    week_start: Optional[datetime] = None
    week_end: Optional[datetime] = None
    status: Optional[SessionStatus] = None
    newsletter_sent: Optional[bool] = None
    participant_count: Optional[int] = Field(default=None, ge=0)
    generated_newsletter: Optional[str] = None


class AdminSessionUpdate(PatchModel):
    status: Optional[SessionStatus] = None
    newsletter_sent: Optional[bool] = None


class AssignmentCreateRequest(BaseModel):
    session_id: str
    newsletter_id: str
    user_id: str
    question_id: str


class ResponseSubmitRequest(BaseModel):
    newsletter_id: str
    session_id: str
    question_id: str
    response: str = Field(max_length=10000)
    is_public: bool = False
    submitted_question: Optional[str] = None

    @field_validator("newsletter_id", "session_id", "question_id", "response")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Newsletter ID, session ID, question ID, and response are required")
        return value


class ResponsePair(BaseModel):
    question_id: str
    response: str


class GenerateNewsletterRequest(BaseModel):
    """Either a session to summarize or an explicit list of responses."""

    newsletter_id: str
    session_id: Optional[str] = None
    responses: Optional[List[ResponsePair]] = None

    @model_validator(mode="after")
    def session_or_responses(self):
        if not self.session_id and not self.responses:
            raise ValueError("Either session_id or a non-empty responses list is required")
        return self
