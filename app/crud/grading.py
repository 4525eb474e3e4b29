import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.deadlines import ensure_utc
from app.core.errors import Conflict, Forbidden, OutOfRange, ValidationError
from app.core.permissions import can_grade
from app.crud.submissions import get_submission
from app.models.assignment import Assignment
from app.models.submission import GRADED, Submission
from app.models.user import User

logger = logging.getLogger(__name__)


def grade(
    db: Session,
    assignment: Assignment,
    student_id: int,
    *,
    marks: int,
    feedback: str | None,
    grader: User,
    now: datetime,
    expected_version: int | None = None,
    can_grade: Callable[[User, Assignment], bool] = can_grade,
) -> Submission:
    """
    Grade (or re-grade) a student's submission.

    Overwrites marks, feedback, grader and grading time; the late flag
    recorded at submit time is left alone. Pass ``expected_version`` to
    refuse grading a submission that changed since it was read.
    """
    if not can_grade(grader, assignment):
        raise Forbidden("Only the assignment owner or an admin can grade")

    sub = get_submission(db, assignment, student_id)

    if isinstance(marks, bool) or not isinstance(marks, int):
        raise ValidationError("Marks must be an integer")

    if marks < 0 or marks > assignment.total_marks:
        raise OutOfRange(f"marks must be between 0 and {assignment.total_marks}")

    if expected_version is not None and expected_version != sub.version:
        raise Conflict("Submission was modified since it was read; reload and retry")

    sub.marks = marks
    sub.feedback = feedback
    sub.status = GRADED
    sub.graded_by = grader.id
    sub.graded_at = ensure_utc(now)

    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise Conflict("Submission was modified concurrently; retry")

    db.refresh(sub)

    logger.info(
        "submission %s graded %s/%s by user %s",
        sub.id,
        marks,
        assignment.total_marks,
        grader.id,
    )
    return sub
