from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.core.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from app.core.current_user import get_current_user
from app.core.deps import get_db, get_now
from app.core.errors import Forbidden
from app.core.permissions import can_manage_assignment, require_staff, require_student
from app.crud import grading
from app.crud import submissions as crud
from app.crud.assignments import get_assignment
from app.models.enrollment import Enrollment
from app.models.user import User
from app.schemas.submission import SubmissionCreate, SubmissionGradeUpdate, SubmissionRead

router = APIRouter()


def _ensure_student_enrolled(db: Session, class_id: int, student_id: int) -> None:
    enrolled = (
        db.query(Enrollment)
        .filter(Enrollment.class_id == class_id, Enrollment.student_id == student_id)
        .first()
        is not None
    )
    if not enrolled:
        raise Forbidden("Not enrolled in this class")


@router.post(
    "/assignments/{assignment_id}/submit",
    response_model=SubmissionRead,
    status_code=status.HTTP_201_CREATED,
)
def submit_assignment(
    assignment_id: int,
    payload: SubmissionCreate,
    response: Response,
    db: Session = Depends(get_db),
    me: User = Depends(require_student),
    now: datetime = Depends(get_now),
):
    assignment = get_assignment(db, assignment_id)
    _ensure_student_enrolled(db, assignment.class_id, me.id)

    sub = crud.submit(
        db,
        assignment,
        me,
        content=payload.content,
        attachments=payload.attachments,
        now=now,
    )

    # resubmission updates the existing row
    if not sub.was_created:
        response.status_code = status.HTTP_200_OK
    return sub


@router.get(
    "/assignments/{assignment_id}/submissions",
    response_model=list[SubmissionRead],
)
def list_submissions_for_assignment(
    assignment_id: int,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    me: User = Depends(require_staff),
):
    assignment = get_assignment(db, assignment_id)
    if not can_manage_assignment(me, assignment):
        raise Forbidden("Only the assignment owner or an admin can view submissions")

    return crud.list_submissions(db, assignment, skip=skip, limit=limit)


@router.get(
    "/assignments/{assignment_id}/submissions/{student_id}",
    response_model=SubmissionRead,
)
def get_student_submission(
    assignment_id: int,
    student_id: int,
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
):
    assignment = get_assignment(db, assignment_id)
    if me.id != student_id and not can_manage_assignment(me, assignment):
        raise Forbidden("Not allowed to view this submission")

    return crud.get_submission(db, assignment, student_id)


@router.patch(
    "/submissions/{submission_id}/grade",
    response_model=SubmissionRead,
)
def grade_submission(
    submission_id: int,
    payload: SubmissionGradeUpdate,
    db: Session = Depends(get_db),
    grader: User = Depends(require_staff),
    now: datetime = Depends(get_now),
):
    sub = crud.get_submission_by_id(db, submission_id)
    assignment = get_assignment(db, sub.assignment_id)

    return grading.grade(
        db,
        assignment,
        sub.student_id,
        marks=payload.marks,
        feedback=payload.feedback,
        grader=grader,
        now=now,
        expected_version=payload.version,
    )
