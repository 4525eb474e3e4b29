from datetime import datetime

from app.core.deadlines import utcnow
from app.db.session import SessionLocal


# every request that needs DB will get a fresh session, and it will always close.
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# single clock for a request; tests override this to pin "now"
def get_now() -> datetime:
    return utcnow()
