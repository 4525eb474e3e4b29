from fastapi import Depends, Header
from sqlalchemy.orm import Session

from app.core.deps import get_db
from app.core.errors import Unauthenticated
from app.models.user import User


# The auth gateway in front of this service verifies the session and forwards
# the caller's id in X-User-Id.
def get_current_user(
    x_user_id: int | None = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    if x_user_id is None:
        raise Unauthenticated("Missing X-User-Id header")

    user = db.query(User).filter(User.id == x_user_id).first()
    if not user:
        raise Unauthenticated("Unknown user")
    return user
