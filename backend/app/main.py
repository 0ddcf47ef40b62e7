"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the progress ledger backend.
Controllers are intentionally thin: they accept requests, delegate to
services or the ledger, and return JSON responses.

Endpoints implemented:
- POST /auth/register
- POST /auth/login
- POST /activities
- GET /activities
- POST /classes
- POST /classes/{classroom_id}/students
- POST /quiz-results
- GET /students/{student_id}/progress
- GET /students/{student_id}/progress/{subject}
- GET /students/{student_id}/achievements
- GET /teachers/{teacher_id}/analytics
- GET /ledger/stats
- GET /health
"""

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.responses import Response
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session
from typing import List, Optional
import json
import logging
import time
import uuid
from .database import engine, create_db_and_tables, get_session
from . import services, repositories, models
from .auth import get_current_user, require_teacher
from .errors import (
    ConcurrencyConflict,
    InvalidSubmission,
    LedgerError,
    NotFound,
    StorageFailure,
    UnknownActivity,
    UnknownUser,
)
from .ledger import ProgressLedger, QuizResultEvent
from .schemas import (
    AchievementOut,
    ActivityIn,
    ActivityOut,
    ClassroomIn,
    EnrollIn,
    LoginIn,
    ProgressOut,
    QuizResultIn,
    RegisterIn,
    SubmissionOut,
    TokenOut,
)
from .utils.rate_limit import SubmissionRateLimiter
from .config import settings

app = FastAPI(title="Progress Ledger API")
logger = logging.getLogger("app.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)
_submit_rate_limiter = SubmissionRateLimiter()
_ledger = ProgressLedger(engine)

_LOGGED_PREFIXES = ("/quiz-results", "/students", "/teachers")

# Wide-open CORS keeps local frontends working without extra config in dev.
if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


def get_ledger() -> ProgressLedger:
    """FastAPI dependency returning the process-wide ledger."""
    return _ledger


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        if request.url.path.startswith(_LOGGED_PREFIXES):
            logger.exception(
                "request_failed %s",
                json.dumps(
                    {
                        "request_id": req_id,
                        "path": request.url.path,
                        "method": request.method,
                        "duration_ms": elapsed_ms,
                        "client": request.client.host if request.client else "unknown",
                    },
                    ensure_ascii=True,
                ),
            )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    if request.url.path.startswith(_LOGGED_PREFIXES):
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
    return response


def _ledger_http_error(exc: LedgerError) -> HTTPException:
    """Translate a ledger error into the matching HTTP status."""
    if isinstance(exc, InvalidSubmission):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, (UnknownActivity, UnknownUser, NotFound)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ConcurrencyConflict):
        return HTTPException(status_code=409, detail='progress update conflicted; retry later')
    if isinstance(exc, StorageFailure):
        return HTTPException(status_code=503, detail='storage unavailable; retry later')
    return HTTPException(status_code=500, detail=str(exc))


def _enforce_submit_rate_limit(user: models.User) -> None:
    allowed, retry_after = _submit_rate_limiter.check(
        f"user:{user.id}", settings.SUBMIT_RATE_LIMIT_PER_MIN, settings.SUBMIT_RATE_LIMIT_WINDOW_SECONDS
    )
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail=f"rate limit exceeded; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )


def _ensure_can_view(user: models.User, student_id: int) -> None:
    if user.id != student_id and user.role != models.ROLE_TEACHER:
        raise HTTPException(status_code=403, detail='not allowed to view this student')


@app.post('/auth/register')
def register(payload: RegisterIn, db: Session = Depends(get_session)):
    """Register a new user (idempotent).

    Returns the existing user if the username is already taken, which
    keeps automation and tests simple.
    """
    existing = repositories.UserRepository(db).get_by_username(payload.username)
    if existing:
        return {'id': existing.id, 'username': existing.username, 'role': existing.role}
    try:
        user = services.AuthService(db).register(payload.username, payload.password, payload.role, payload.grade)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {'id': user.id, 'username': user.username, 'role': user.role}


@app.post('/auth/login', response_model=TokenOut)
def login(payload: LoginIn, db: Session = Depends(get_session)):
    """Authenticate a user and return a short-lived JWT token."""
    token = services.AuthService(db).authenticate(payload.username, payload.password)
    if not token:
        raise HTTPException(status_code=401, detail='invalid credentials')
    return {'access_token': token}


@app.post('/activities', response_model=ActivityOut)
def publish_activity(payload: ActivityIn, db: Session = Depends(get_session), teacher: models.User = Depends(require_teacher)):
    """Publish a new activity definition (teachers only)."""
    return services.ActivityService(db).publish(payload)


@app.get('/activities', response_model=List[ActivityOut])
def list_activities(subject: Optional[str] = None, db: Session = Depends(get_session)):
    """List published activities, optionally for one subject."""
    return services.ActivityService(db).list(subject)


@app.post('/classes')
def create_classroom(payload: ClassroomIn, db: Session = Depends(get_session), teacher: models.User = Depends(require_teacher)):
    classroom = services.ClassroomService(db).create(teacher, payload.name)
    return {'id': classroom.id, 'name': classroom.name, 'teacher_id': classroom.teacher_id}


@app.post('/classes/{classroom_id}/students')
def enroll_student(classroom_id: int, payload: EnrollIn, db: Session = Depends(get_session), teacher: models.User = Depends(require_teacher)):
    """Enroll a student in one of the caller's classrooms."""
    svc = services.ClassroomService(db)
    try:
        enrollment = svc.enroll(teacher, classroom_id, payload.student_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return {'classroom_id': enrollment.classroom_id, 'student_id': enrollment.student_id}


@app.post('/quiz-results', response_model=SubmissionOut)
def submit_quiz_result(payload: QuizResultIn, user: models.User = Depends(get_current_user), ledger: ProgressLedger = Depends(get_ledger)):
    """Apply a quiz result for the authenticated student.

    Returns the updated progress record for the activity's subject, the
    points earned and any achievements unlocked by this submission.
    """
    _enforce_submit_rate_limit(user)
    event = QuizResultEvent(
        user_id=user.id,
        activity_id=payload.activity_id,
        score=payload.score,
        max_score=payload.max_score,
        answers=payload.answers,
        time_taken=payload.time_taken,
        submission_id=payload.submission_id,
    )
    try:
        outcome = ledger.submit_quiz_result(event)
    except LedgerError as e:
        raise _ledger_http_error(e)
    return SubmissionOut(
        progress=ProgressOut.model_validate(outcome.progress, from_attributes=True),
        points_earned=outcome.points_earned,
        new_achievements=[AchievementOut.model_validate(a, from_attributes=True) for a in outcome.new_achievements],
        duplicate=outcome.duplicate,
    )


@app.get('/students/{student_id}/progress', response_model=List[ProgressOut])
def get_progress(student_id: int, user: models.User = Depends(get_current_user), ledger: ProgressLedger = Depends(get_ledger)):
    """Return every subject record for the student."""
    _ensure_can_view(user, student_id)
    try:
        records = ledger.get_progress(student_id)
    except LedgerError as e:
        raise _ledger_http_error(e)
    return [ProgressOut.model_validate(r, from_attributes=True) for r in records]


@app.get('/students/{student_id}/progress/{subject}', response_model=ProgressOut)
def get_subject_progress(student_id: int, subject: str, user: models.User = Depends(get_current_user), ledger: ProgressLedger = Depends(get_ledger)):
    _ensure_can_view(user, student_id)
    try:
        records = ledger.get_progress(student_id, subject)
    except LedgerError as e:
        raise _ledger_http_error(e)
    return ProgressOut.model_validate(records[0], from_attributes=True)


@app.get('/students/{student_id}/achievements', response_model=List[AchievementOut])
def get_achievements(student_id: int, user: models.User = Depends(get_current_user), ledger: ProgressLedger = Depends(get_ledger)):
    _ensure_can_view(user, student_id)
    try:
        achievements = ledger.get_achievements(student_id)
    except LedgerError as e:
        raise _ledger_http_error(e)
    return [AchievementOut.model_validate(a, from_attributes=True) for a in achievements]


@app.get('/teachers/{teacher_id}/analytics')
def get_class_analytics(teacher_id: int, teacher: models.User = Depends(require_teacher), ledger: ProgressLedger = Depends(get_ledger)):
    """Per-class averages for the calling teacher's classrooms.

    The response flags `partial: true` and lists `warnings` when some
    students' progress could not be read.
    """
    if teacher.id != teacher_id:
        raise HTTPException(status_code=403, detail='teachers can only view their own analytics')
    try:
        return ledger.get_class_analytics(teacher_id)
    except LedgerError as e:
        raise _ledger_http_error(e)


@app.get('/ledger/stats')
def ledger_stats(ledger: ProgressLedger = Depends(get_ledger)):
    """Process-local ledger counters (submissions, retries, conflicts...)."""
    return ledger.stats.snapshot()


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
