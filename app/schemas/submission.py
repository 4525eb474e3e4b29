from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_serializer

from app.core.deadlines import ensure_utc


class SubmissionCreate(BaseModel):
    content: Optional[str] = None
    attachments: list[str] = []


class SubmissionRead(BaseModel):
    id: int
    assignment_id: int
    student_id: int
    content: Optional[str]
    attachments: list[str]
    submitted_at: datetime
    status: Literal["submitted", "late", "graded"]
    is_late: bool
    marks: Optional[int] = None
    feedback: Optional[str] = None
    graded_by: Optional[int] = None
    graded_at: Optional[datetime] = None
    version: int

    # SQLite hands back naive values; they are stored as UTC
    @field_serializer("submitted_at", "graded_at")
    def serialize_utc(self, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    class Config:
        from_attributes = True


class SubmissionGradeUpdate(BaseModel):
    marks: int
    feedback: Optional[str] = None
    # optimistic concurrency: reject if the submission changed since this version was read
    version: Optional[int] = Field(default=None, ge=1)
