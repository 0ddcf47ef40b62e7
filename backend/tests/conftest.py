import os

# keep the app's import-time engine off the developer database
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from app import models
from app.database import build_engine, create_db_and_tables, get_session
from app.ledger import ProgressLedger
from app.scoring import default_badge_rules


@pytest.fixture
def engine(tmp_path):
    """A fresh SQLite file database per test."""
    eng = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    create_db_and_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def ledger(engine):
    return ProgressLedger(engine, level_threshold=100, rules=default_badge_rules(),
                          max_attempts=5, retry_base_delay=0)


@pytest.fixture
def make_user(engine):
    def _make(username, role=models.ROLE_STUDENT, grade=None):
        with Session(engine) as session:
            user = models.User(username=username, password_hash="x", role=role, grade=grade)
            session.add(user)
            session.commit()
            return user.id
    return _make


@pytest.fixture
def make_activity(engine):
    def _make(subject="math", points_reward=50, activity_type="multiple_choice", title="activity"):
        with Session(engine) as session:
            activity = models.Activity(title=title, subject=subject, points_reward=points_reward,
                                       activity_type=activity_type)
            session.add(activity)
            session.commit()
            return activity.id
    return _make


@pytest.fixture
def make_class(engine):
    def _make(teacher_id, student_ids, name="class"):
        with Session(engine) as session:
            classroom = models.Classroom(name=name, teacher_id=teacher_id)
            session.add(classroom)
            session.commit()
            for sid in student_ids:
                session.add(models.Enrollment(classroom_id=classroom.id, student_id=sid))
            session.commit()
            return classroom.id
    return _make


@pytest.fixture
def client(engine, ledger):
    """TestClient bound to the per-test database and ledger."""
    from app.main import app, get_ledger, _submit_rate_limiter

    def _session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_ledger] = lambda: ledger
    _submit_rate_limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()
