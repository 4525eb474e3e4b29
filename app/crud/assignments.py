import logging
from datetime import datetime
from typing import Callable

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core import deadlines
from app.core.config import DESCRIPTION_MAX_LENGTH, TITLE_MAX_LENGTH
from app.core.errors import Forbidden, ImmutableField, NotFound, ValidationError
from app.core.permissions import can_manage_assignment
from app.models.assignment import Assignment
from app.models.school_class import SchoolClass
from app.models.submission import GRADED, Submission
from app.models.user import User

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "title",
    "description",
    "subject_id",
    "class_id",
    "due_at",
    "total_marks",
    "attachments",
)


def _assignment_order_by():
    """
    Assignment ordering:
    - due_at ascending
    - assignment id ascending (stable tie-break)
    """
    return (
        Assignment.due_at.asc(),
        Assignment.id.asc(),
    )


def _escape_like(text: str) -> str:
    # search text is literal; backslash is the LIKE escape character
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _validate_fields(fields: dict) -> None:
    if "title" in fields:
        title = fields["title"]
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("Title is required")
        if len(title) > TITLE_MAX_LENGTH:
            raise ValidationError(f"Title cannot exceed {TITLE_MAX_LENGTH} characters")

    if "description" in fields:
        description = fields["description"]
        if not isinstance(description, str):
            raise ValidationError("Description must be text")
        if len(description) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError(
                f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters"
            )

    for key in ("subject_id", "class_id"):
        if key in fields and (isinstance(fields[key], bool) or not isinstance(fields[key], int)):
            raise ValidationError(f"{key} must be an integer reference")

    if "due_at" in fields and not isinstance(fields["due_at"], datetime):
        raise ValidationError("Due date must be a valid timestamp")

    if "total_marks" in fields:
        total = fields["total_marks"]
        if isinstance(total, bool) or not isinstance(total, int):
            raise ValidationError("Total marks must be an integer")
        if total < 1:
            raise ValidationError("Total marks must be at least 1")

    if "attachments" in fields:
        attachments = fields["attachments"]
        if not isinstance(attachments, list) or not all(isinstance(a, str) for a in attachments):
            raise ValidationError("Attachments must be a list of references")


def _past_due_warnings(due_at: datetime, now: datetime) -> list[str]:
    if deadlines.classify(due_at, now).status == deadlines.OVERDUE:
        return ["Due date is in the past"]
    return []


def _ensure_class_exists(db: Session, class_id: int) -> SchoolClass:
    school_class = db.query(SchoolClass).filter(SchoolClass.id == class_id).first()
    if not school_class:
        raise NotFound("Class not found")
    return school_class


def get_assignment(db: Session, assignment_id: int) -> Assignment:
    a = db.query(Assignment).filter(Assignment.id == assignment_id).first()
    if not a:
        raise NotFound("Assignment not found")
    return a


def has_graded_submissions(db: Session, assignment_id: int) -> bool:
    return (
        db.query(Submission.id)
        .filter(Submission.assignment_id == assignment_id, Submission.status == GRADED)
        .first()
        is not None
    )


def create_assignment(
    db: Session,
    *,
    title: str,
    description: str,
    subject_id: int,
    class_id: int,
    teacher: User,
    due_at: datetime,
    total_marks: int,
    attachments: list[str] | None = None,
    now: datetime,
) -> tuple[Assignment, list[str]]:
    """
    Create an assignment owned by ``teacher``.

    A due date in the past is accepted (back-dated record keeping); it is
    reported in the returned warnings instead of being rejected.
    """
    fields = {
        "title": title,
        "description": description,
        "subject_id": subject_id,
        "class_id": class_id,
        "due_at": due_at,
        "total_marks": total_marks,
        "attachments": list(attachments or []),
    }
    _validate_fields(fields)
    _ensure_class_exists(db, class_id)

    warnings = _past_due_warnings(due_at, now)
    if warnings:
        logger.warning("assignment %r created with past due date %s", title, due_at)

    a = Assignment(
        title=title.strip(),
        description=description.strip(),
        subject_id=subject_id,
        class_id=class_id,
        teacher_id=teacher.id,
        due_at=deadlines.ensure_utc(due_at),
        total_marks=total_marks,
        attachments=fields["attachments"],
        is_active=True,
    )
    db.add(a)
    db.commit()
    db.refresh(a)

    logger.info("assignment %s created by user %s", a.id, teacher.id)
    return a, warnings


def update_assignment(
    db: Session,
    assignment: Assignment,
    changes: dict,
    *,
    actor: User,
    now: datetime,
    can_manage: Callable[[User, Assignment], bool] = can_manage_assignment,
) -> tuple[Assignment, list[str]]:
    if not can_manage(actor, assignment):
        raise Forbidden("Not authorized to update this assignment")

    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

    _validate_fields(changes)

    if (
        "total_marks" in changes
        and changes["total_marks"] != assignment.total_marks
        and has_graded_submissions(db, assignment.id)
    ):
        raise ImmutableField("Total marks cannot change once a submission has been graded")

    if "class_id" in changes and changes["class_id"] != assignment.class_id:
        _ensure_class_exists(db, changes["class_id"])

    warnings: list[str] = []
    if "due_at" in changes:
        changes = {**changes, "due_at": deadlines.ensure_utc(changes["due_at"])}
        warnings = _past_due_warnings(changes["due_at"], now)

    for key, value in changes.items():
        if key in ("title", "description"):
            value = value.strip()
        setattr(assignment, key, value)

    db.commit()
    db.refresh(assignment)

    logger.info(
        "assignment %s updated by user %s (%s)",
        assignment.id,
        actor.id,
        ", ".join(sorted(changes)) or "no changes",
    )
    return assignment, warnings


def deactivate_assignment(
    db: Session,
    assignment: Assignment,
    *,
    actor: User,
    can_manage: Callable[[User, Assignment], bool] = can_manage_assignment,
) -> Assignment:
    # soft delete: submissions and grading history stay in place
    if not can_manage(actor, assignment):
        raise Forbidden("Not authorized to delete this assignment")

    assignment.is_active = False
    db.commit()
    db.refresh(assignment)

    logger.info("assignment %s deactivated by user %s", assignment.id, actor.id)
    return assignment


def list_assignments(
    db: Session,
    *,
    now: datetime,
    subject_id: int | None = None,
    class_id: int | None = None,
    teacher_id: int | None = None,
    status: str | None = None,
    search: str | None = None,
    include_inactive: bool = False,
    skip: int = 0,
    limit: int | None = None,
) -> list[Assignment]:
    q = db.query(Assignment)

    if not include_inactive:
        q = q.filter(Assignment.is_active.is_(True))
    if subject_id is not None:
        q = q.filter(Assignment.subject_id == subject_id)
    if class_id is not None:
        q = q.filter(Assignment.class_id == class_id)
    if teacher_id is not None:
        q = q.filter(Assignment.teacher_id == teacher_id)
    if search:
        pattern = f"%{_escape_like(search.lower())}%"
        q = q.filter(
            or_(
                func.lower(Assignment.title).like(pattern, escape="\\"),
                func.lower(Assignment.description).like(pattern, escape="\\"),
            )
        )

    q = q.order_by(*_assignment_order_by())

    if status is None:
        q = q.offset(skip)
        if limit is not None:
            q = q.limit(limit)
        return q.all()

    # status is derived, so it can only be filtered after loading
    rows = [a for a in q.all() if deadlines.classify(a.due_at, now).status == status]
    end = None if limit is None else skip + limit
    return rows[skip:end]
