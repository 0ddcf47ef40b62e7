import pytest
from sqlalchemy.exc import OperationalError

from app import models
from app.errors import UnknownUser
from app.ledger import QuizResultEvent


def submit(ledger, user_id, activity_id, score=1, max_score=1):
    ledger.submit_quiz_result(QuizResultEvent(
        user_id=user_id, activity_id=activity_id, score=score, max_score=max_score,
        answers={"activity_type": "multiple_choice", "selections": [1]},
    ))


@pytest.fixture
def classroom(ledger, make_user, make_activity, make_class):
    teacher = make_user("teach", role=models.ROLE_TEACHER)
    a = make_user("a")
    b = make_user("b")
    idle = make_user("idle")
    math1 = make_activity(subject="math", points_reward=100)
    make_activity(subject="math", points_reward=100)
    art = make_activity(subject="art", points_reward=40)
    # a: math 200 pts (level 3, 2/2 done), art 40 pts (1/1 done)
    submit(ledger, a, math1)
    submit(ledger, a, math1)
    submit(ledger, a, art)
    # b: math 50 pts (level 1, 1/2 done)
    submit(ledger, b, math1, score=1, max_score=2)
    class_id = make_class(teacher, [a, b, idle], name="7B")
    return {"teacher": teacher, "a": a, "b": b, "idle": idle, "class_id": class_id}


def test_class_aggregates(ledger, classroom):
    result = ledger.get_class_analytics(classroom["teacher"])

    assert result["partial"] is False
    assert result["warnings"] == []
    [entry] = result["classes"]
    assert entry["classroom_id"] == classroom["class_id"]
    assert entry["name"] == "7B"
    assert entry["student_count"] == 3
    assert entry["reporting_students"] == 3
    # (240 + 50 + 0) / 3
    assert entry["average_points"] == pytest.approx(96.67)
    # (3 + 1 + 1) / 3
    assert entry["average_level"] == pytest.approx(1.67)
    # mean of [1.0, 1.0, 0.5]
    assert entry["completion_rate"] == pytest.approx(0.8333)


def test_failed_student_lookup_degrades(ledger, classroom, monkeypatch):
    original = ledger._load_student_progress

    def flaky(student_id):
        if student_id == classroom["b"]:
            raise OperationalError("SELECT", {}, Exception("database is locked"))
        return original(student_id)

    monkeypatch.setattr(ledger, "_load_student_progress", flaky)
    result = ledger.get_class_analytics(classroom["teacher"])

    assert result["partial"] is True
    assert result["warnings"] == [{
        "student_id": classroom["b"],
        "classroom_id": classroom["class_id"],
        "reason": "OperationalError",
    }]
    [entry] = result["classes"]
    assert entry["student_count"] == 3
    assert entry["reporting_students"] == 2
    assert entry["average_points"] == pytest.approx(120.0)
    assert entry["completion_rate"] == pytest.approx(1.0)


def test_teacher_without_classes(ledger, make_user):
    teacher = make_user("new-teacher", role=models.ROLE_TEACHER)
    assert ledger.get_class_analytics(teacher) == {
        "teacher_id": teacher, "classes": [], "warnings": [], "partial": False,
    }


def test_empty_class_has_zero_averages(ledger, make_user, make_class):
    teacher = make_user("t2", role=models.ROLE_TEACHER)
    make_class(teacher, [], name="empty")
    [entry] = ledger.get_class_analytics(teacher)["classes"]
    assert entry["reporting_students"] == 0
    assert entry["average_points"] == 0.0
    assert entry["completion_rate"] == 0.0


def test_analytics_requires_teacher(ledger, make_user):
    student = make_user("not-a-teacher")
    with pytest.raises(UnknownUser):
        ledger.get_class_analytics(student)
    with pytest.raises(UnknownUser):
        ledger.get_class_analytics(4242)
