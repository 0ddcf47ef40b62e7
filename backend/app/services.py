"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories for
the reference data the ledger reads: users, published activities and
classrooms. Progress itself is owned by `app.ledger`.
"""

from datetime import datetime, timedelta, timezone
from passlib.context import CryptContext
import jwt
from typing import List, Optional
from . import models, repositories
from .config import settings
from .schemas import ActivityIn
from sqlmodel import Session

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class AuthService:
    """Authentication related operations (register + authenticate)."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def register(self, username: str, password: str, role: str = models.ROLE_STUDENT,
                 grade: Optional[str] = None) -> models.User:
        """Create a new user with a hashed password.

        Returns the persisted `User` instance.
        """
        if role not in models.ROLES:
            raise ValueError(f"unknown role: {role}")
        if not username or not password:
            raise ValueError("username and password required")
        hashed = PWD_CTX.hash(password)
        u = models.User(username=username, password_hash=hashed, role=role, grade=grade)
        return self.user_repo.create(u)

    def authenticate(self, username: str, password: str):
        """Verify credentials and return a signed JWT token on success.

        Returns `None` if authentication fails.
        """
        user = self.user_repo.get_by_username(username)
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        expire = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRE_HOURS)
        payload = {"user_id": user.id, "username": user.username, "role": user.role, "exp": int(expire.timestamp())}
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class ActivityService:
    """Publish activities; published activities are never edited."""
    def __init__(self, session: Session):
        self.session = session
        self.activity_repo = repositories.ActivityRepository(session)

    def publish(self, payload: ActivityIn) -> models.Activity:
        activity = models.Activity(
            title=payload.title,
            subject=payload.subject.strip(),
            difficulty=payload.difficulty,
            points_reward=payload.points_reward,
            activity_type=payload.content.activity_type,
            content=payload.content.model_dump(),
        )
        return self.activity_repo.create(activity)

    def list(self, subject: Optional[str] = None) -> List[models.Activity]:
        return self.activity_repo.list(subject)


class ClassroomService:
    """Create classrooms and manage enrollment."""
    def __init__(self, session: Session):
        self.session = session
        self.class_repo = repositories.ClassroomRepository(session)
        self.user_repo = repositories.UserRepository(session)

    def create(self, teacher: models.User, name: str) -> models.Classroom:
        return self.class_repo.create(models.Classroom(name=name, teacher_id=teacher.id))

    def enroll(self, teacher: models.User, classroom_id: int, student_id: int) -> models.Enrollment:
        """Enroll `student_id` in a classroom owned by `teacher`.

        Raises LookupError for an unknown classroom or student and
        PermissionError when the classroom belongs to another teacher.
        """
        classroom = self.class_repo.get(classroom_id)
        if not classroom:
            raise LookupError(f"classroom not found: {classroom_id}")
        if classroom.teacher_id != teacher.id:
            raise PermissionError("classroom belongs to another teacher")
        student = self.user_repo.get(student_id)
        if not student or student.role != models.ROLE_STUDENT:
            raise LookupError(f"student not found: {student_id}")
        return self.class_repo.enroll(classroom_id, student_id)
