from datetime import datetime, timedelta

import pytest

from app.core.errors import Forbidden, ImmutableField, NotFound, ValidationError
from app.crud import assignments as crud
from app.crud import grading
from app.crud import submissions as submissions_crud
from app.models.assignment import Assignment
from app.models.submission import Submission
from app.models.user import User
from tests.conftest import DUE, auth_header


def _payload(seed, **overrides) -> dict:
    payload = {
        "title": "Essay",
        "description": "Write 500 words",
        "subject_id": 3,
        "class_id": seed.class_id,
        "due_at": (DUE + timedelta(days=10)).isoformat(),
        "total_marks": 50,
        "attachments": ["files/brief.pdf"],
    }
    payload.update(overrides)
    return payload


def _create_kwargs(db, seed, **overrides) -> dict:
    kwargs = {
        "title": "Essay",
        "description": "Write 500 words",
        "subject_id": 3,
        "class_id": seed.class_id,
        "teacher": db.get(User, seed.teacher),
        "due_at": DUE + timedelta(days=10),
        "total_marks": 50,
        "attachments": [],
        "now": DUE,
    }
    kwargs.update(overrides)
    return kwargs


def test_create_assignment(client, clock, seed):
    clock.now = DUE

    r = client.post("/assignments", headers=auth_header(seed.teacher), json=_payload(seed))
    assert r.status_code == 201, r.text

    body = r.json()
    assert body["teacher_id"] == seed.teacher
    assert body["is_active"] is True
    assert body["attachments"] == ["files/brief.pdf"]
    assert body["status"] == "active"
    assert body["days_remaining"] == 10
    assert body["warnings"] == []
    assert body["stats"]["total_students"] == 2
    assert body["stats"]["submission_rate"] == 0


def test_back_dated_assignment_is_created_with_warning(client, clock, seed):
    clock.now = DUE

    r = client.post(
        "/assignments",
        headers=auth_header(seed.teacher),
        json=_payload(seed, due_at=(DUE - timedelta(days=1)).isoformat()),
    )
    assert r.status_code == 201, r.text
    assert r.json()["status"] == "overdue"
    assert r.json()["warnings"] == ["Due date is in the past"]


def test_student_cannot_create_assignment(client, seed):
    r = client.post("/assignments", headers=auth_header(seed.student1), json=_payload(seed))
    assert r.status_code == 403
    assert r.json()["error"] == "forbidden"


def test_create_rejects_bad_payload_shape(client, seed):
    r = client.post(
        "/assignments",
        headers=auth_header(seed.teacher),
        json=_payload(seed, total_marks=0),
    )
    assert r.status_code == 422

    r = client.post(
        "/assignments",
        headers=auth_header(seed.teacher),
        json=_payload(seed, title="x" * 201),
    )
    assert r.status_code == 422


@pytest.mark.parametrize(
    "overrides",
    [
        {"title": ""},
        {"title": "   "},
        {"title": "x" * 201},
        {"description": "x" * 2001},
        {"total_marks": 0},
        {"total_marks": True},
        {"due_at": "2024-12-20"},
        {"attachments": [1, 2]},
    ],
)
def test_create_validation_errors(db, seed, overrides):
    with pytest.raises(ValidationError):
        crud.create_assignment(db, **_create_kwargs(db, seed, **overrides))


def test_create_accepts_bounds(db, seed):
    a, warnings = crud.create_assignment(
        db,
        **_create_kwargs(db, seed, title="x" * 200, description="y" * 2000, total_marks=1),
    )
    assert a.id is not None
    assert a.total_marks == 1
    assert warnings == []


def test_create_for_unknown_class_is_not_found(db, seed):
    with pytest.raises(NotFound):
        crud.create_assignment(db, **_create_kwargs(db, seed, class_id=9999))


def test_get_assignment_includes_derived_status_and_stats(client, clock, seed):
    clock.now = DUE - timedelta(hours=1)

    r = client.get(f"/assignments/{seed.assignment}", headers=auth_header(seed.student1))
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["status"] == "due-soon"
    assert body["days_remaining"] == 1
    assert body["stats"]["total_students"] == 2

    clock.now = DUE + timedelta(seconds=1)
    r = client.get(f"/assignments/{seed.assignment}", headers=auth_header(seed.student1))
    assert r.json()["status"] == "overdue"


def test_get_unknown_assignment_is_404(client, seed):
    r = client.get("/assignments/9999", headers=auth_header(seed.teacher))
    assert r.status_code == 404
    assert r.json() == {"detail": "Assignment not found", "error": "not_found"}


def test_owner_can_update_metadata(client, clock, seed):
    clock.now = DUE - timedelta(days=5)

    r = client.put(
        f"/assignments/{seed.assignment}",
        headers=auth_header(seed.teacher),
        json={"title": "HW1 (revised)", "due_at": (DUE + timedelta(days=7)).isoformat()},
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["title"] == "HW1 (revised)"
    assert body["description"] == "Chapter 3 exercises"
    assert body["days_remaining"] == 12
    assert body["warnings"] == []


def test_update_moving_due_date_into_past_warns(client, clock, seed):
    clock.now = DUE

    r = client.put(
        f"/assignments/{seed.assignment}",
        headers=auth_header(seed.teacher),
        json={"due_at": (DUE - timedelta(days=2)).isoformat()},
    )
    assert r.status_code == 200, r.text
    assert r.json()["warnings"] == ["Due date is in the past"]


def test_other_teacher_cannot_update(client, seed):
    r = client.put(
        f"/assignments/{seed.assignment}",
        headers=auth_header(seed.other_teacher),
        json={"title": "mine now"},
    )
    assert r.status_code == 403
    assert r.json()["error"] == "forbidden"


def test_admin_can_update(client, seed):
    r = client.put(
        f"/assignments/{seed.assignment}",
        headers=auth_header(seed.admin),
        json={"total_marks": 80},
    )
    assert r.status_code == 200, r.text
    assert r.json()["total_marks"] == 80


def test_update_rejects_unknown_fields(db, seed):
    a = db.get(Assignment, seed.assignment)
    teacher = db.get(User, seed.teacher)

    with pytest.raises(ValidationError):
        crud.update_assignment(db, a, {"teacher_id": seed.other_teacher}, actor=teacher, now=DUE)


def test_update_with_explicit_null_title_is_rejected(db, seed):
    a = db.get(Assignment, seed.assignment)
    teacher = db.get(User, seed.teacher)

    with pytest.raises(ValidationError):
        crud.update_assignment(db, a, {"title": None}, actor=teacher, now=DUE)


def test_total_marks_frozen_once_graded(db, seed):
    a = db.get(Assignment, seed.assignment)
    teacher = db.get(User, seed.teacher)
    student = db.get(User, seed.student1)

    # editable while nothing is graded
    a, _ = crud.update_assignment(db, a, {"total_marks": 90}, actor=teacher, now=DUE)
    assert a.total_marks == 90

    submissions_crud.submit(db, a, student, content="x", attachments=[], now=DUE)
    grading.grade(db, a, student.id, marks=80, feedback=None, grader=teacher, now=DUE)

    with pytest.raises(ImmutableField):
        crud.update_assignment(db, a, {"total_marks": 100}, actor=teacher, now=DUE)

    # same value is not a change
    a, _ = crud.update_assignment(db, a, {"total_marks": 90, "title": "HW1b"}, actor=teacher, now=DUE)
    assert a.total_marks == 90
    assert a.title == "HW1b"


def test_total_marks_change_after_grading_returns_409(client, seed):
    r = client.post(
        f"/assignments/{seed.assignment}/submit",
        headers=auth_header(seed.student1),
        json={"content": "x"},
    )
    sub_id = r.json()["id"]
    client.patch(f"/submissions/{sub_id}/grade", headers=auth_header(seed.teacher), json={"marks": 10})

    r = client.put(
        f"/assignments/{seed.assignment}",
        headers=auth_header(seed.teacher),
        json={"total_marks": 10},
    )
    assert r.status_code == 409
    assert r.json()["error"] == "immutable_field"


def test_deactivate_keeps_submissions(db, client, seed):
    client.post(
        f"/assignments/{seed.assignment}/submit",
        headers=auth_header(seed.student1),
        json={"content": "x"},
    )

    r = client.delete(f"/assignments/{seed.assignment}", headers=auth_header(seed.teacher))
    assert r.status_code == 200, r.text
    assert r.json()["is_active"] is False
    assert r.json()["stats"]["submitted_count"] == 1

    assert db.query(Submission).filter(Submission.assignment_id == seed.assignment).count() == 1

    r = client.post(
        f"/assignments/{seed.assignment}/submit",
        headers=auth_header(seed.student2),
        json={"content": "too late"},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "validation_error"


def test_other_teacher_cannot_deactivate(db, seed):
    a = db.get(Assignment, seed.assignment)
    other = db.get(User, seed.other_teacher)

    with pytest.raises(Forbidden):
        crud.deactivate_assignment(db, a, actor=other)

    db.refresh(a)
    assert a.is_active is True


def test_list_filters(client, clock, seed):
    clock.now = DUE - timedelta(days=1)

    client.post(
        "/assignments",
        headers=auth_header(seed.teacher),
        json=_payload(seed, title="Lab report", description="Titration"),
    )
    client.post(
        "/assignments",
        headers=auth_header(seed.teacher),
        json=_payload(seed, title="Old quiz", subject_id=9, due_at=(DUE - timedelta(days=3)).isoformat()),
    )

    r = client.get("/assignments", headers=auth_header(seed.student1))
    assert r.status_code == 200, r.text
    # ordered by due date
    assert [a["title"] for a in r.json()] == ["Old quiz", "HW1", "Lab report"]

    r = client.get("/assignments?status=due-soon", headers=auth_header(seed.student1))
    assert [a["title"] for a in r.json()] == ["HW1"]

    r = client.get("/assignments?status=overdue", headers=auth_header(seed.student1))
    assert [a["title"] for a in r.json()] == ["Old quiz"]

    r = client.get("/assignments?search=TITRATION", headers=auth_header(seed.student1))
    assert [a["title"] for a in r.json()] == ["Lab report"]

    r = client.get("/assignments?subject_id=9", headers=auth_header(seed.student1))
    assert [a["title"] for a in r.json()] == ["Old quiz"]

    r = client.get("/assignments?skip=1&limit=1", headers=auth_header(seed.student1))
    assert [a["title"] for a in r.json()] == ["HW1"]

    r = client.get("/assignments?status=closed", headers=auth_header(seed.student1))
    assert r.status_code == 422


def test_list_hides_inactive_unless_asked(client, seed):
    client.delete(f"/assignments/{seed.assignment}", headers=auth_header(seed.teacher))

    r = client.get("/assignments", headers=auth_header(seed.teacher))
    assert r.json() == []

    r = client.get("/assignments?include_inactive=true", headers=auth_header(seed.teacher))
    assert [a["id"] for a in r.json()] == [seed.assignment]


def test_list_by_class(db, seed):
    crud.create_assignment(db, **_create_kwargs(db, seed, class_id=seed.empty_class_id, title="Other class"))

    rows = crud.list_assignments(db, now=DUE, class_id=seed.empty_class_id)
    assert [a.title for a in rows] == ["Other class"]

    rows = crud.list_assignments(db, now=datetime(2030, 1, 1), teacher_id=seed.other_teacher)
    assert rows == []


def _utc_offset(value: str) -> timedelta:
    return datetime.fromisoformat(value.replace("Z", "+00:00")).utcoffset()


def test_timestamps_are_served_in_utc_with_offset(client, clock, seed):
    clock.now = DUE - timedelta(days=1)

    r = client.post(
        "/assignments",
        headers=auth_header(seed.teacher),
        json=_payload(seed, due_at="2024-12-20T02:00:00+02:00"),
    )
    assert r.status_code == 201, r.text
    created = r.json()
    assert _utc_offset(created["due_at"]) == timedelta(0)
    assert datetime.fromisoformat(created["due_at"].replace("Z", "+00:00")) == DUE
    assert _utc_offset(created["created_at"]) == timedelta(0)
    assert _utc_offset(created["updated_at"]) == timedelta(0)

    r = client.get(f"/assignments/{created['id']}", headers=auth_header(seed.student1))
    assert _utc_offset(r.json()["due_at"]) == timedelta(0)


def test_search_text_is_matched_literally(client, seed):
    client.post(
        "/assignments",
        headers=auth_header(seed.teacher),
        json=_payload(seed, title="50% effort", description="plain"),
    )

    r = client.get("/assignments?search=%25", headers=auth_header(seed.teacher))
    assert [a["title"] for a in r.json()] == ["50% effort"]

    r = client.get("/assignments?search=_", headers=auth_header(seed.teacher))
    assert r.json() == []

    r = client.get("/assignments?search=%5C", headers=auth_header(seed.teacher))
    assert r.json() == []


def test_status_filter_paginates_after_filtering(db, seed):
    crud.create_assignment(db, **_create_kwargs(db, seed, title="Later", due_at=DUE + timedelta(days=20)))
    crud.create_assignment(db, **_create_kwargs(db, seed, title="Latest", due_at=DUE + timedelta(days=30)))

    rows = crud.list_assignments(db, now=DUE - timedelta(days=10), status="active", skip=1, limit=1)
    assert [a.title for a in rows] == ["Later"]

    rows = crud.list_assignments(db, now=DUE - timedelta(days=10), skip=2, limit=5)
    assert [a.title for a in rows] == ["Latest"]
