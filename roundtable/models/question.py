from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from roundtable.models.base import PatchModel


class QuestionSource(str, Enum):
    USER = "user"
    ADMIN = "admin"
    LLM = "llm"


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    newsletter_id: str
    text: str
    source: QuestionSource = QuestionSource.USER
    created_by: str
    usage_count: int = 0
    is_active: bool = True
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    created_at: datetime


class QuestionCreateRequest(BaseModel):
    newsletter_id: str
    text: str = Field(max_length=1000)
    source: QuestionSource = QuestionSource.USER
    category: Optional[str] = None
    tags: Optional[List[str]] = None

    @field_validator("newsletter_id", "text")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Newsletter ID and question text are required")
        return value


class QuestionUpdateRequest(PatchModel):
    NULLABLE = ("category",)

    text: Optional[str] = Field(default=None, max_length=1000)
    source: Optional[QuestionSource] = None
    is_active: Optional[bool] = None
    category: Optional[str] = Field(default=None, max_length=100)
    tags: Optional[List[str]] = None

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("Question text is required")
        return value


class AdminQuestionUpdate(PatchModel):
    """Admins may not rewrite a question's source."""

    NULLABLE = ("category",)

    text: Optional[str] = Field(default=None, max_length=1000)
    is_active: Optional[bool] = None
    category: Optional[str] = Field(default=None, max_length=100)
    tags: Optional[List[str]] = None
