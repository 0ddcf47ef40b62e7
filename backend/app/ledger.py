"""Progress ledger: the only writer of progress records and achievements.

A quiz result submission is applied as one database transaction per
(user, subject): the quiz result row, the progress record update and any
new achievements commit together or not at all. Writers for the same
key are serialised in-process by `KeyedLock`, and every record update is
conditional on the record's `version`, so a writer in another process
that lost the race gets `ConcurrencyConflict` and retries with backoff
instead of overwriting the other update.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence, Union

from pydantic import BaseModel, TypeAdapter, ValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlmodel import Session

from . import models, repositories
from .analytics import student_summary, summarize_class
from .config import settings
from .errors import (
    ConcurrencyConflict,
    InvalidPayload,
    LedgerError,
    NotFound,
    StorageFailure,
    UnknownActivity,
    UnknownUser,
)
from .schemas import AnswersPayload
from .scoring import (
    BadgeRule,
    ProgressState,
    achievement_name,
    default_badge_rules,
    level_for,
    newly_unlocked,
    points_for,
    validate_score,
)
from .utils.ledger_stats import LedgerStats
from .utils.locks import KeyedLock

logger = logging.getLogger("app.ledger")

_ANSWERS = TypeAdapter(AnswersPayload)


@dataclass
class QuizResultEvent:
    """A quiz result as handed to the ledger."""
    user_id: int
    activity_id: int
    score: int
    max_score: int
    answers: Union[dict, BaseModel, None] = None
    time_taken: Optional[float] = None
    submission_id: Optional[str] = None


@dataclass
class LedgerOutcome:
    progress: models.ProgressRecord
    points_earned: int
    new_achievements: List[models.Achievement] = field(default_factory=list)
    duplicate: bool = False


@dataclass(frozen=True)
class _ActivityRef:
    id: int
    subject: str
    points_reward: int
    activity_type: str


class ProgressLedger:
    """Applies quiz results and serves progress reads."""

    def __init__(
        self,
        engine: Engine,
        *,
        level_threshold: Optional[int] = None,
        rules: Optional[Sequence[BadgeRule]] = None,
        max_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        stats: Optional[LedgerStats] = None,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self.engine = engine
        self.level_threshold = level_threshold or settings.LEVEL_POINTS_THRESHOLD
        if rules is None:
            rules = default_badge_rules(
                activity_milestone=settings.BADGE_ACTIVITY_MILESTONE,
                points_milestone=settings.BADGE_POINTS_MILESTONE,
                level_milestone=settings.BADGE_LEVEL_MILESTONE,
            )
        self.rules = list(rules)
        self.max_attempts = max_attempts or settings.LEDGER_MAX_ATTEMPTS
        self.retry_base_delay = settings.LEDGER_RETRY_BASE_DELAY if retry_base_delay is None else retry_base_delay
        self.stats = stats or LedgerStats()
        self._sleep = sleep
        self._locks = KeyedLock()

    # -- writes -----------------------------------------------------------

    def submit_quiz_result(self, event: QuizResultEvent) -> LedgerOutcome:
        """Validate `event` and apply it to the (user, subject) progress record.

        Raises `InvalidScore`, `InvalidPayload`, `UnknownActivity` or
        `UnknownUser` before anything is written. `ConcurrencyConflict` and
        `StorageFailure` are retried up to `max_attempts` times and then
        re-raised; in every failure case nothing is committed.
        """
        validate_score(event.score, event.max_score)
        attempt = 1
        while True:
            try:
                # reference reads share the retry budget with the write
                activity = self._load_references(event)
                answers = self._validate_answers(event.answers, activity)
                points_earned = points_for(activity.points_reward, event.score, event.max_score)
                with self._locks.hold((event.user_id, activity.subject)):
                    return self._apply(event, activity, answers, points_earned)
            except (ConcurrencyConflict, StorageFailure) as exc:
                if attempt >= self.max_attempts:
                    self.stats.record(
                        "submission_failed", user_id=event.user_id, activity_id=event.activity_id,
                        attempts=attempt, error=repr(exc),
                    )
                    raise
                delay = self.retry_base_delay * (2 ** (attempt - 1))
                self.stats.record(
                    "retry", user_id=event.user_id, activity_id=event.activity_id,
                    attempt=attempt, reason=type(exc).__name__, delay_s=delay,
                )
                self._sleep(delay)
                attempt += 1

    def _load_references(self, event: QuizResultEvent) -> _ActivityRef:
        try:
            with Session(self.engine) as session:
                activity = repositories.ActivityRepository(session).get(event.activity_id)
                if activity is None:
                    raise UnknownActivity(f"activity not found: {event.activity_id}")
                user = repositories.UserRepository(session).get(event.user_id)
                if user is None or user.role != models.ROLE_STUDENT:
                    raise UnknownUser(f"student not found: {event.user_id}")
                return _ActivityRef(
                    id=activity.id,
                    subject=activity.subject,
                    points_reward=activity.points_reward,
                    activity_type=activity.activity_type,
                )
        except DBAPIError as exc:
            raise StorageFailure(str(exc)) from exc

    @staticmethod
    def _validate_answers(answers, activity: _ActivityRef) -> dict:
        if answers is None:
            return {'activity_type': activity.activity_type}
        if isinstance(answers, BaseModel):
            answers = answers.model_dump()
        try:
            parsed = _ANSWERS.validate_python(answers)
        except ValidationError as exc:
            raise InvalidPayload(f"invalid answers payload: {exc.errors()[0]['msg']}") from exc
        if parsed.activity_type != activity.activity_type:
            raise InvalidPayload(
                f"answers are for {parsed.activity_type!r} but activity {activity.id} is {activity.activity_type!r}"
            )
        return parsed.model_dump()

    def _apply(self, event: QuizResultEvent, activity: _ActivityRef, answers: dict,
               points_earned: int) -> LedgerOutcome:
        # committed values stay readable without another round trip
        with Session(self.engine, expire_on_commit=False) as session:
            progress_repo = repositories.ProgressRepository(session)
            try:
                if event.submission_id is not None:
                    replay = repositories.QuizResultRepository(session).find_by_submission(
                        event.user_id, event.submission_id
                    )
                    if replay is not None:
                        record = progress_repo.get(event.user_id, replay.subject)
                        self.stats.record(
                            "submission_duplicate", user_id=event.user_id,
                            submission_id=event.submission_id, quiz_result_id=replay.id,
                        )
                        return LedgerOutcome(progress=record, points_earned=replay.points_earned, duplicate=True)

                total = repositories.ActivityRepository(session).count_by_subject(activity.subject)
                record = progress_repo.get(event.user_id, activity.subject)
                if record is None:
                    record = progress_repo.insert(models.ProgressRecord(
                        user_id=event.user_id, subject=activity.subject, total_activities=total,
                    ))

                before = ProgressState(record.activities_completed, record.points, record.current_level)
                completed = before.activities_completed + 1
                points = before.points + points_earned
                after = ProgressState(completed, points, level_for(points, self.level_threshold, before.current_level))
                unlocked = newly_unlocked(self.rules, before, after, record.badges or [])
                badges = list(record.badges or []) + [rule.badge_id for rule in unlocked]

                updated_at = datetime.now(timezone.utc)
                if not progress_repo.update_if_version(
                    record.id, record.version,
                    activities_completed=after.activities_completed,
                    points=after.points,
                    current_level=after.current_level,
                    badges=badges,
                    total_activities=total,
                    updated_at=updated_at,
                ):
                    raise ConcurrencyConflict(
                        f"progress for user {event.user_id} in {activity.subject!r} changed concurrently"
                    )

                repositories.QuizResultRepository(session).add(models.QuizResult(
                    user_id=event.user_id,
                    activity_id=activity.id,
                    subject=activity.subject,
                    score=event.score,
                    max_score=event.max_score,
                    time_taken=event.time_taken,
                    answers=answers,
                    points_earned=points_earned,
                    submission_id=event.submission_id,
                ))
                achievement_repo = repositories.AchievementRepository(session)
                achievements = [
                    achievement_repo.add(models.Achievement(
                        user_id=event.user_id,
                        type=rule.badge_id,
                        name=achievement_name(rule.badge_id, activity.subject),
                        subject=activity.subject,
                    ))
                    for rule in unlocked
                ]
                session.commit()
            except LedgerError:
                session.rollback()
                raise
            except IntegrityError as exc:
                session.rollback()
                raise ConcurrencyConflict(str(exc.orig)) from exc
            except DBAPIError as exc:
                session.rollback()
                raise StorageFailure(str(exc)) from exc

        # built from the committed values; a re-read could fail after the commit
        progress = models.ProgressRecord(
            id=record.id,
            user_id=event.user_id,
            subject=activity.subject,
            activities_completed=after.activities_completed,
            total_activities=total,
            points=after.points,
            badges=badges,
            current_level=after.current_level,
            version=record.version + 1,
            updated_at=updated_at,
        )
        self.stats.record(
            "submission_applied", user_id=event.user_id, subject=activity.subject,
            activity_id=activity.id, points_earned=points_earned, points=after.points,
            level=after.current_level, new_badges=[rule.badge_id for rule in unlocked],
        )
        return LedgerOutcome(progress=progress, points_earned=points_earned, new_achievements=achievements)

    # -- reads ------------------------------------------------------------

    def get_progress(self, user_id: int, subject: Optional[str] = None) -> List[models.ProgressRecord]:
        """Return the user's records, or the single record for `subject`.

        Raises `UnknownUser` for an unknown user and `NotFound` when the
        requested subject has no record yet.
        """
        with Session(self.engine) as session:
            if repositories.UserRepository(session).get(user_id) is None:
                raise UnknownUser(f"user not found: {user_id}")
            progress_repo = repositories.ProgressRepository(session)
            if subject is None:
                return list(progress_repo.list_for_user(user_id))
            record = progress_repo.get(user_id, subject)
            if record is None:
                raise NotFound(f"no progress for user {user_id} in {subject!r}")
            return [record]

    def get_achievements(self, user_id: int) -> List[models.Achievement]:
        with Session(self.engine) as session:
            if repositories.UserRepository(session).get(user_id) is None:
                raise UnknownUser(f"user not found: {user_id}")
            return list(repositories.AchievementRepository(session).list_for_user(user_id))

    def get_class_analytics(self, teacher_id: int) -> dict:
        """Aggregate progress for every class the teacher owns.

        Each student is read on its own; a student whose lookup fails is
        left out of the averages and reported in `warnings` instead of
        failing the whole call.
        """
        with Session(self.engine) as session:
            teacher = repositories.UserRepository(session).get(teacher_id)
            if teacher is None or teacher.role != models.ROLE_TEACHER:
                raise UnknownUser(f"teacher not found: {teacher_id}")
            class_repo = repositories.ClassroomRepository(session)
            rosters = [(c, class_repo.list_student_ids(c.id)) for c in class_repo.list_for_teacher(teacher_id)]

        classes = []
        warnings = []
        for classroom, student_ids in rosters:
            summaries = {}
            for student_id in student_ids:
                try:
                    records = self._load_student_progress(student_id)
                except (LedgerError, SQLAlchemyError) as exc:
                    logger.warning("analytics_student_skipped student_id=%s classroom_id=%s error=%r",
                                   student_id, classroom.id, exc)
                    warnings.append({
                        'student_id': student_id,
                        'classroom_id': classroom.id,
                        'reason': type(exc).__name__,
                    })
                    continue
                summaries[student_id] = student_summary(records)
            classes.append(summarize_class(classroom, len(student_ids), summaries))
        return {
            'teacher_id': teacher_id,
            'classes': classes,
            'warnings': warnings,
            'partial': bool(warnings),
        }

    def _load_student_progress(self, student_id: int) -> List[models.ProgressRecord]:
        with Session(self.engine) as session:
            student = repositories.UserRepository(session).get(student_id)
            if student is None:
                raise UnknownUser(f"student not found: {student_id}")
            return list(repositories.ProgressRepository(session).list_for_user(student_id))
