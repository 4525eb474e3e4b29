from datetime import datetime
from typing import Iterable

from sqlalchemy.orm import Session

from app.core import deadlines
from app.models.assignment import Assignment
from app.models.enrollment import Enrollment
from app.models.submission import GRADED, LATE, SUBMITTED
from app.schemas.assignment_stats import AssignmentStats

COUNTED_STATUSES = {SUBMITTED, LATE, GRADED}


def _percent(part: int, whole: int) -> int:
    # half-up, same as the dashboard client
    if whole == 0:
        return 0
    return (part * 200 + whole) // (2 * whole)


def get_enrolled_student_ids(db: Session, class_id: int) -> list[int]:
    rows = (
        db.query(Enrollment.student_id)
        .filter(Enrollment.class_id == class_id)
        .order_by(Enrollment.student_id.asc())
        .all()
    )
    return [r.student_id for r in rows]


def compute_stats(
    assignment: Assignment,
    enrolled_student_ids: Iterable[int],
    now: datetime,
) -> AssignmentStats:
    """Recompute submission statistics from the assignment's current submissions."""
    total_students = len(set(enrolled_student_ids))
    submissions = list(assignment.submissions)

    submitted = sum(1 for s in submissions if s.status in COUNTED_STATUSES)
    graded = [s for s in submissions if s.status == GRADED]
    late = sum(1 for s in submissions if s.status == LATE)
    submitted_late = sum(1 for s in submissions if s.is_late)

    marks = [s.marks for s in graded if s.marks is not None]
    average = float(sum(marks)) / len(marks) if marks else None

    info = deadlines.classify(assignment.due_at, now)

    return AssignmentStats(
        assignment_id=assignment.id,
        total_students=total_students,
        submitted_count=submitted,
        graded_count=len(graded),
        late_count=late,
        submitted_late_count=submitted_late,
        missing_count=max(total_students - submitted, 0),
        pending_count=submitted - len(graded),
        submission_rate=_percent(submitted, total_students),
        graded_rate=_percent(len(graded), submitted),
        average_marks=average,
        status=info.status,
        days_remaining=info.days_remaining,
    )
