import logging
from datetime import datetime
from typing import Callable

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core import deadlines
from app.core.errors import Conflict, Forbidden, NotFound, SubmissionLocked, ValidationError
from app.core.permissions import can_submit
from app.models.assignment import Assignment
from app.models.submission import GRADED, LATE, SUBMITTED, Submission
from app.models.user import User

logger = logging.getLogger(__name__)


def _find(db: Session, assignment_id: int, student_id: int) -> Submission | None:
    return (
        db.query(Submission)
        .filter(
            and_(
                Submission.assignment_id == assignment_id,
                Submission.student_id == student_id,
            )
        )
        .first()
    )


def get_submission(db: Session, assignment: Assignment, student_id: int) -> Submission:
    s = _find(db, assignment.id, student_id)
    if not s:
        raise NotFound("Submission not found")
    return s


def get_submission_by_id(db: Session, submission_id: int) -> Submission:
    s = db.query(Submission).filter(Submission.id == submission_id).first()
    if not s:
        raise NotFound("Submission not found")
    return s


def list_submissions(
    db: Session,
    assignment: Assignment,
    *,
    skip: int = 0,
    limit: int | None = None,
) -> list[Submission]:
    q = (
        db.query(Submission)
        .filter(Submission.assignment_id == assignment.id)
        .order_by(Submission.id.asc())
        .offset(skip)
    )
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def submit(
    db: Session,
    assignment: Assignment,
    student: User,
    *,
    content: str | None,
    attachments: list[str] | None,
    now: datetime,
    can_submit: Callable[[User, Assignment], bool] = can_submit,
) -> Submission:
    """
    Create the student's submission, or overwrite it on resubmission.

    One row per (assignment, student) is guaranteed by a unique constraint:
    if a concurrent first submission wins the insert, this call falls back
    to updating the row it created. Sets ``was_created`` on the returned
    row. Late/submitted is re-derived from ``now`` on every call. A graded
    submission is locked.
    """
    if not can_submit(student, assignment):
        raise Forbidden("Not allowed to submit to this assignment")

    if not assignment.is_active:
        raise ValidationError("Assignment is closed for submissions")

    attachments = list(attachments or [])
    if not all(isinstance(a, str) for a in attachments):
        raise ValidationError("Attachments must be a list of references")

    now = deadlines.ensure_utc(now)
    late = deadlines.is_late(assignment.due_at, now)
    status = LATE if late else SUBMITTED

    for _attempt in range(2):
        existing = _find(db, assignment.id, student.id)

        if existing is None:
            s = Submission(
                assignment_id=assignment.id,
                student_id=student.id,
                content=content,
                attachments=attachments,
                submitted_at=now,
                status=status,
                is_late=late,
            )
            db.add(s)

            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.warning(
                    "concurrent first submission for assignment %s student %s; retrying as update",
                    assignment.id,
                    student.id,
                )
                continue

            db.refresh(s)
            s.was_created = True
            logger.info(
                "submission %s created (assignment %s, student %s, %s)",
                s.id,
                assignment.id,
                student.id,
                status,
            )
            return s

        if existing.status == GRADED:
            raise SubmissionLocked("Submission has already been graded")

        existing.content = content
        existing.attachments = attachments
        existing.submitted_at = now
        existing.is_late = late
        existing.status = status

        try:
            db.commit()
        except StaleDataError:
            db.rollback()
            raise Conflict("Submission was modified concurrently; retry")

        db.refresh(existing)
        existing.was_created = False
        logger.info(
            "submission %s updated (assignment %s, student %s, %s)",
            existing.id,
            assignment.id,
            student.id,
            status,
        )
        return existing

    raise Conflict("Could not record submission; retry")
