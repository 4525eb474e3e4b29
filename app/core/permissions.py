from fastapi import Depends

from app.core.current_user import get_current_user
from app.core.errors import Forbidden
from app.models.assignment import Assignment
from app.models.user import ADMIN, STUDENT, TEACHER, User

STAFF_ROLES = {TEACHER, ADMIN}


def can_manage_assignment(user: User, assignment: Assignment) -> bool:
    """Owner teacher or any admin may edit, deactivate or review an assignment."""
    if user.role == ADMIN:
        return True
    return user.role == TEACHER and assignment.teacher_id == user.id


def can_grade(user: User, assignment: Assignment) -> bool:
    return can_manage_assignment(user, assignment)


def can_submit(user: User, assignment: Assignment) -> bool:
    return user.role == STUDENT


def require_staff(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role not in STAFF_ROLES:
        raise Forbidden("Teacher or admin role required")
    return current_user


def require_student(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != STUDENT:
        raise Forbidden("Student role required")
    return current_user
