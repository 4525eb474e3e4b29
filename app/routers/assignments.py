from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core import deadlines
from app.core.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from app.core.current_user import get_current_user
from app.core.deps import get_db, get_now
from app.core.errors import Forbidden
from app.core.permissions import can_manage_assignment, require_staff
from app.crud import assignments as crud
from app.crud.stats import compute_stats, get_enrolled_student_ids
from app.models.assignment import Assignment
from app.models.user import User
from app.schemas.assignment import (
    AssignmentCreate,
    AssignmentRead,
    AssignmentStatus,
    AssignmentUpdate,
)
from app.schemas.assignment_stats import AssignmentStats

router = APIRouter()


def _with_derived(
    db: Session,
    a: Assignment,
    now: datetime,
    *,
    include_stats: bool = False,
    warnings: Optional[list[str]] = None,
) -> Assignment:
    # attach computed fields for response
    info = deadlines.classify(a.due_at, now)
    a.status = info.status
    a.days_remaining = info.days_remaining
    a.stats = (
        compute_stats(a, get_enrolled_student_ids(db, a.class_id), now)
        if include_stats
        else None
    )
    a.warnings = warnings or []
    return a


@router.post(
    "/assignments",
    response_model=AssignmentRead,
    status_code=status.HTTP_201_CREATED,
)
def create_assignment(
    payload: AssignmentCreate,
    db: Session = Depends(get_db),
    teacher: User = Depends(require_staff),
    now: datetime = Depends(get_now),
):
    a, warnings = crud.create_assignment(
        db,
        title=payload.title,
        description=payload.description,
        subject_id=payload.subject_id,
        class_id=payload.class_id,
        teacher=teacher,
        due_at=payload.due_at,
        total_marks=payload.total_marks,
        attachments=payload.attachments,
        now=now,
    )
    return _with_derived(db, a, now, include_stats=True, warnings=warnings)


@router.get("/assignments", response_model=list[AssignmentRead])
def list_assignments(
    subject_id: Optional[int] = None,
    class_id: Optional[int] = None,
    teacher_id: Optional[int] = None,
    status_filter: Optional[AssignmentStatus] = Query(default=None, alias="status"),
    search: Optional[str] = None,
    include_inactive: bool = False,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    now: datetime = Depends(get_now),
):
    rows = crud.list_assignments(
        db,
        now=now,
        subject_id=subject_id,
        class_id=class_id,
        teacher_id=teacher_id,
        status=status_filter,
        search=search,
        include_inactive=include_inactive,
        skip=skip,
        limit=limit,
    )
    return [_with_derived(db, a, now, include_stats=True) for a in rows]


@router.get("/assignments/{assignment_id}", response_model=AssignmentRead)
def get_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    now: datetime = Depends(get_now),
):
    a = crud.get_assignment(db, assignment_id)
    return _with_derived(db, a, now, include_stats=True)


@router.put("/assignments/{assignment_id}", response_model=AssignmentRead)
def update_assignment(
    assignment_id: int,
    payload: AssignmentUpdate,
    db: Session = Depends(get_db),
    me: User = Depends(require_staff),
    now: datetime = Depends(get_now),
):
    a = crud.get_assignment(db, assignment_id)
    a, warnings = crud.update_assignment(
        db,
        a,
        payload.model_dump(exclude_unset=True),
        actor=me,
        now=now,
    )
    return _with_derived(db, a, now, include_stats=True, warnings=warnings)


@router.delete("/assignments/{assignment_id}", response_model=AssignmentRead)
def deactivate_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
    me: User = Depends(require_staff),
    now: datetime = Depends(get_now),
):
    a = crud.get_assignment(db, assignment_id)
    a = crud.deactivate_assignment(db, a, actor=me)
    return _with_derived(db, a, now, include_stats=True)


@router.get("/assignments/{assignment_id}/stats", response_model=AssignmentStats)
def assignment_stats(
    assignment_id: int,
    db: Session = Depends(get_db),
    me: User = Depends(require_staff),
    now: datetime = Depends(get_now),
):
    a = crud.get_assignment(db, assignment_id)
    if not can_manage_assignment(me, a):
        raise Forbidden("Only the assignment owner or an admin can view statistics")

    return compute_stats(a, get_enrolled_student_ids(db, a.class_id), now)
