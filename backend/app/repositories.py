"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
activities, classrooms, progress, quiz results, achievements). The
reference-data repositories commit on create; the ledger repositories
(`ProgressRepository`, `QuizResultRepository`, `AchievementRepository`)
never commit, so the ledger can write all three in one transaction.
"""

from datetime import datetime, timezone
from typing import List, Optional
from sqlmodel import Session, select
from sqlalchemy import func, update
from . import models


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_username(self, username: str) -> Optional[models.User]:
        """Return a `User` by username or `None` if not found."""
        stmt = select(models.User).where(models.User.username == username)
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)


class ActivityRepository:
    """Publish and look up activity definitions."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, activity: models.Activity) -> models.Activity:
        self.session.add(activity)
        self.session.commit()
        self.session.refresh(activity)
        return activity

    def get(self, activity_id: int) -> Optional[models.Activity]:
        return self.session.get(models.Activity, activity_id)

    def list(self, subject: Optional[str] = None) -> List[models.Activity]:
        """Return activities, optionally restricted to one subject."""
        stmt = select(models.Activity)
        if subject is not None:
            stmt = stmt.where(models.Activity.subject == subject)
        return self.session.exec(stmt.order_by(models.Activity.id)).all()

    def count_by_subject(self, subject: str) -> int:
        """Catalog size for `subject`."""
        stmt = select(func.count()).select_from(models.Activity).where(models.Activity.subject == subject)
        return self.session.exec(stmt).one()


class ClassroomRepository:
    """Classrooms and their enrolled students."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, classroom: models.Classroom) -> models.Classroom:
        self.session.add(classroom)
        self.session.commit()
        self.session.refresh(classroom)
        return classroom

    def get(self, classroom_id: int) -> Optional[models.Classroom]:
        return self.session.get(models.Classroom, classroom_id)

    def list_for_teacher(self, teacher_id: int) -> List[models.Classroom]:
        stmt = select(models.Classroom).where(models.Classroom.teacher_id == teacher_id).order_by(models.Classroom.id)
        return self.session.exec(stmt).all()

    def enroll(self, classroom_id: int, student_id: int) -> models.Enrollment:
        """Enroll a student; enrolling twice returns the existing row."""
        existing = self.session.exec(
            select(models.Enrollment).where(
                models.Enrollment.classroom_id == classroom_id,
                models.Enrollment.student_id == student_id
            )
        ).first()
        if existing:
            return existing
        enrollment = models.Enrollment(classroom_id=classroom_id, student_id=student_id)
        self.session.add(enrollment)
        self.session.commit()
        self.session.refresh(enrollment)
        return enrollment

    def list_student_ids(self, classroom_id: int) -> List[int]:
        stmt = select(models.Enrollment.student_id).where(
            models.Enrollment.classroom_id == classroom_id
        ).order_by(models.Enrollment.student_id)
        return list(self.session.exec(stmt).all())


class ProgressRepository:
    """Reads and version-checked writes of `ProgressRecord` rows."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: int, subject: str) -> Optional[models.ProgressRecord]:
        stmt = select(models.ProgressRecord).where(
            models.ProgressRecord.user_id == user_id,
            models.ProgressRecord.subject == subject
        )
        return self.session.exec(stmt).first()

    def list_for_user(self, user_id: int) -> List[models.ProgressRecord]:
        stmt = select(models.ProgressRecord).where(
            models.ProgressRecord.user_id == user_id
        ).order_by(models.ProgressRecord.subject)
        return self.session.exec(stmt).all()

    def insert(self, record: models.ProgressRecord) -> models.ProgressRecord:
        """Stage a new record and flush it so the unique key is checked now."""
        self.session.add(record)
        self.session.flush()
        return record

    def update_if_version(self, record_id: int, expected_version: int, **values) -> bool:
        """Apply `values` only if the stored version is still `expected_version`.

        Bumps the version. Returns False when another writer got there first.
        """
        values['version'] = expected_version + 1
        values.setdefault('updated_at', datetime.now(timezone.utc))
        stmt = (
            update(models.ProgressRecord)
            .where(models.ProgressRecord.id == record_id, models.ProgressRecord.version == expected_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.session.exec(stmt)
        return result.rowcount == 1


class QuizResultRepository:
    """Stage quiz result events."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, result: models.QuizResult) -> models.QuizResult:
        self.session.add(result)
        return result

    def find_by_submission(self, user_id: int, submission_id: str) -> Optional[models.QuizResult]:
        stmt = select(models.QuizResult).where(
            models.QuizResult.user_id == user_id,
            models.QuizResult.submission_id == submission_id
        )
        return self.session.exec(stmt).first()

    def list_for_user(self, user_id: int) -> List[models.QuizResult]:
        stmt = select(models.QuizResult).where(models.QuizResult.user_id == user_id).order_by(models.QuizResult.id)
        return self.session.exec(stmt).all()


class AchievementRepository:
    """Stage and list earned achievements."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, achievement: models.Achievement) -> models.Achievement:
        self.session.add(achievement)
        return achievement

    def list_for_user(self, user_id: int) -> List[models.Achievement]:
        stmt = select(models.Achievement).where(
            models.Achievement.user_id == user_id
        ).order_by(models.Achievement.earned_at, models.Achievement.id)
        return self.session.exec(stmt).all()
