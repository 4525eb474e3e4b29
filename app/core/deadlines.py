import math
from datetime import datetime, timezone
from typing import NamedTuple

from app.core.config import DUE_SOON_DAYS

ACTIVE = "active"
DUE_SOON = "due-soon"
OVERDUE = "overdue"

SECONDS_PER_DAY = 24 * 60 * 60


class DeadlineInfo(NamedTuple):
    status: str
    days_remaining: int


def ensure_utc(value: datetime) -> datetime:
    # SQLite often returns naive datetimes; treat as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def classify(due_at: datetime, now: datetime) -> DeadlineInfo:
    """
    Classify a due date relative to ``now``.

    - days_remaining rounds partial days up, so 1 hour left is 1 day left
    - "overdue" strictly after the due instant
    - "due-soon" when DUE_SOON_DAYS or fewer days remain
    - "active" otherwise
    """
    due = ensure_utc(due_at)
    current = ensure_utc(now)

    days_remaining = int(math.ceil((due - current).total_seconds() / SECONDS_PER_DAY))

    if current > due:
        status = OVERDUE
    elif days_remaining <= DUE_SOON_DAYS:
        status = DUE_SOON
    else:
        status = ACTIVE

    return DeadlineInfo(status=status, days_remaining=days_remaining)


def is_late(due_at: datetime, submitted_at: datetime) -> bool:
    """A submission is late exactly when the assignment was overdue at submit time."""
    return classify(due_at, submitted_at).status == OVERDUE
