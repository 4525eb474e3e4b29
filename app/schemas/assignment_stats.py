from pydantic import BaseModel


class AssignmentStats(BaseModel):
    assignment_id: int
    total_students: int
    submitted_count: int
    graded_count: int
    late_count: int
    submitted_late_count: int
    missing_count: int
    pending_count: int
    submission_rate: int
    graded_rate: int
    average_marks: float | None
    status: str
    days_remaining: int
