"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table; the field names of `ProgressRecord`,
`QuizResult` and `Achievement` are the storage contract relied on by
exports and dashboards.
"""

from typing import Any, Dict, List, Optional
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON, UniqueConstraint
from datetime import datetime, timezone


ROLE_STUDENT = "student"
ROLE_TEACHER = "teacher"
ROLES = (ROLE_STUDENT, ROLE_TEACHER)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `username`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    - `role`: `student` or `teacher`
    - `grade`: optional school grade for students
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    role: str = Field(default=ROLE_STUDENT, index=True)
    grade: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class Classroom(SQLModel, table=True):
    """A class owned by a teacher."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    teacher_id: int = Field(foreign_key='user.id', index=True)


class Enrollment(SQLModel, table=True):
    """Membership of a student in a `Classroom`."""
    __table_args__ = (UniqueConstraint('classroom_id', 'student_id', name='uq_enrollment_class_student'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    classroom_id: int = Field(foreign_key='classroom.id', index=True)
    student_id: int = Field(foreign_key='user.id', index=True)


class Activity(SQLModel, table=True):
    """A published activity definition.

    Activities are read-only once published. `content` holds the
    activity-type specific payload validated by `schemas.ActivityContent`.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    subject: str = Field(index=True)
    difficulty: Optional[str] = None
    points_reward: int = 0
    activity_type: str
    content: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    published_at: datetime = Field(default_factory=_utcnow)


class ProgressRecord(SQLModel, table=True):
    """Per-(user, subject) progress owned by the ledger.

    `version` is bumped on every applied submission and guards updates
    against concurrent writers.
    """
    __table_args__ = (UniqueConstraint('user_id', 'subject', name='uq_progress_user_subject'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    subject: str = Field(index=True)
    activities_completed: int = 0
    total_activities: int = 0
    points: int = 0
    badges: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    current_level: int = 1
    version: int = 0
    updated_at: datetime = Field(default_factory=_utcnow)


class QuizResult(SQLModel, table=True):
    """A write-once quiz result event and the points it produced."""
    __table_args__ = (UniqueConstraint('user_id', 'submission_id', name='uq_quizresult_user_submission'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    activity_id: int = Field(foreign_key='activity.id')
    subject: str
    score: int
    max_score: int
    time_taken: Optional[float] = None
    answers: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    points_earned: int = 0
    submission_id: Optional[str] = None
    submitted_at: datetime = Field(default_factory=_utcnow)


class Achievement(SQLModel, table=True):
    """An earned achievement. A user earns a given `name` at most once."""
    __table_args__ = (UniqueConstraint('user_id', 'name', name='uq_achievement_user_name'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    type: str
    name: str
    subject: Optional[str] = None
    earned_at: datetime = Field(default_factory=_utcnow)
