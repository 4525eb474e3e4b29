import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

TEST_DB_FILE = "test_school_assignments.db"
TEST_DB_URL = f"sqlite:///./{TEST_DB_FILE}"

# point the app's own engine (used by the startup hook) at the test database
os.environ["DATABASE_URL"] = TEST_DB_URL

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from app.core.deps import get_db, get_now  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.main import app  # noqa: E402
from app.models.assignment import Assignment  # noqa: E402
from app.models.enrollment import Enrollment  # noqa: E402
from app.models.school_class import SchoolClass  # noqa: E402
from app.models.submission import Submission  # noqa: E402
from app.models.user import ADMIN, STUDENT, TEACHER, User  # noqa: E402

DUE = datetime(2024, 12, 20, 0, 0, 0, tzinfo=timezone.utc)

engine = create_engine(
    TEST_DB_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


class FrozenClock:
    """Stands in for get_now; tests move it by assigning .now."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def auth_header(user_id: int) -> dict:
    return {"X-User-Id": str(user_id)}


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create a fresh schema once for the whole test session."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    if os.path.exists(TEST_DB_FILE):
        os.remove(TEST_DB_FILE)


@pytest.fixture(autouse=True)
def seed():
    """Seed a clean minimal dataset for each test; returns the seeded ids."""
    db = TestingSessionLocal()
    try:
        # Clear tables (child -> parent)
        db.query(Submission).delete()
        db.query(Assignment).delete()
        db.query(Enrollment).delete()
        db.query(SchoolClass).delete()
        db.query(User).delete()
        db.commit()

        # Users
        student1 = User(email="student1@example.com", full_name="Student One", role=STUDENT)
        student2 = User(email="student2@example.com", full_name="Student Two", role=STUDENT)
        outsider = User(email="student3@example.com", full_name="Student Three", role=STUDENT)
        teacher = User(email="teacher1@example.com", full_name="Teacher One", role=TEACHER)
        other_teacher = User(email="teacher2@example.com", full_name="Teacher Two", role=TEACHER)
        admin = User(email="admin@example.com", full_name="Admin", role=ADMIN)
        db.add_all([student1, student2, outsider, teacher, other_teacher, admin])
        db.commit()

        # Classes: one with two students, one empty
        school_class = SchoolClass(name="Grade 10", grade="10", section="A", class_teacher_id=teacher.id)
        empty_class = SchoolClass(name="Grade 11", grade="11", section="B")
        db.add_all([school_class, empty_class])
        db.commit()

        # Enrollment
        db.add_all(
            [
                Enrollment(class_id=school_class.id, student_id=student1.id),
                Enrollment(class_id=school_class.id, student_id=student2.id),
            ]
        )
        db.commit()

        # Assignment due 2024-12-20T00:00:00Z
        hw = Assignment(
            title="HW1",
            description="Chapter 3 exercises",
            subject_id=7,
            class_id=school_class.id,
            teacher_id=teacher.id,
            due_at=DUE,
            total_marks=100,
            attachments=[],
            is_active=True,
        )
        db.add(hw)
        db.commit()

        yield SimpleNamespace(
            student1=student1.id,
            student2=student2.id,
            outsider=outsider.id,
            teacher=teacher.id,
            other_teacher=other_teacher.id,
            admin=admin.id,
            class_id=school_class.id,
            empty_class_id=empty_class.id,
            assignment=hw.id,
        )
    finally:
        db.close()


@pytest.fixture()
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock():
    return FrozenClock(DUE - timedelta(days=5))


@pytest.fixture()
def client(clock):
    """Test client that uses the test DB session and a frozen clock."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = clock
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
