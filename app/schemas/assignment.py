from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_serializer

from app.core.config import DESCRIPTION_MAX_LENGTH, TITLE_MAX_LENGTH
from app.core.deadlines import ensure_utc
from app.schemas.assignment_stats import AssignmentStats

AssignmentStatus = Literal["active", "due-soon", "overdue"]


class AssignmentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    description: str = Field(default="", max_length=DESCRIPTION_MAX_LENGTH)
    subject_id: int
    class_id: int
    due_at: datetime
    total_marks: int = Field(ge=1)
    attachments: list[str] = []


class AssignmentUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)
    subject_id: Optional[int] = None
    class_id: Optional[int] = None
    due_at: Optional[datetime] = None
    total_marks: Optional[int] = Field(default=None, ge=1)
    attachments: Optional[list[str]] = None


class AssignmentRead(BaseModel):
    id: int
    title: str
    description: str
    subject_id: int
    class_id: int
    teacher_id: int
    due_at: datetime
    total_marks: int
    attachments: list[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    # derived on read, never stored
    status: AssignmentStatus
    days_remaining: int
    stats: Optional[AssignmentStats] = None

    warnings: list[str] = []

    @field_serializer("due_at", "created_at", "updated_at")
    def serialize_utc(self, value: datetime) -> datetime:
        return ensure_utc(value)

    class Config:
        from_attributes = True
