"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests. Activity content and quiz answers are
discriminated unions keyed by `activity_type`, so each activity type
carries its own validated shape instead of a free-form dictionary.
"""

from datetime import datetime
from pydantic import BaseModel, Field
from typing import Annotated, Dict, List, Literal, Optional, Union

from .scoring import MAX_SCORE_VALUE


class RegisterIn(BaseModel):
    """Payload for the registration endpoint."""
    username: str
    password: str
    role: Literal['student', 'teacher'] = 'student'
    grade: Optional[str] = None


class LoginIn(BaseModel):
    """Payload for the login endpoint."""
    username: str
    password: str


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str


class ChoiceQuestion(BaseModel):
    prompt: str
    choices: List[str] = Field(min_length=2)
    correct_index: int = Field(ge=0)


class MultipleChoiceContent(BaseModel):
    activity_type: Literal['multiple_choice'] = 'multiple_choice'
    questions: List[ChoiceQuestion] = Field(min_length=1)


class ShortAnswerContent(BaseModel):
    activity_type: Literal['short_answer'] = 'short_answer'
    prompts: List[str] = Field(min_length=1)


class MatchingContent(BaseModel):
    activity_type: Literal['matching'] = 'matching'
    pairs: Dict[str, str] = Field(min_length=1)


ActivityContent = Annotated[
    Union[MultipleChoiceContent, ShortAnswerContent, MatchingContent],
    Field(discriminator='activity_type'),
]


class MultipleChoiceAnswers(BaseModel):
    activity_type: Literal['multiple_choice'] = 'multiple_choice'
    selections: List[int] = Field(default_factory=list)


class ShortAnswerAnswers(BaseModel):
    activity_type: Literal['short_answer'] = 'short_answer'
    responses: List[str] = Field(default_factory=list)


class MatchingAnswers(BaseModel):
    activity_type: Literal['matching'] = 'matching'
    matches: Dict[str, str] = Field(default_factory=dict)


AnswersPayload = Annotated[
    Union[MultipleChoiceAnswers, ShortAnswerAnswers, MatchingAnswers],
    Field(discriminator='activity_type'),
]


class ActivityIn(BaseModel):
    """Request model for publishing an activity."""
    title: str
    subject: str = Field(min_length=1)
    difficulty: Optional[str] = None
    points_reward: int = Field(ge=0, le=MAX_SCORE_VALUE)
    content: ActivityContent


class ActivityOut(BaseModel):
    id: int
    title: str
    subject: str
    difficulty: Optional[str] = None
    points_reward: int
    activity_type: str
    published_at: datetime


class ClassroomIn(BaseModel):
    name: str = Field(min_length=1)


class EnrollIn(BaseModel):
    student_id: int


class QuizResultIn(BaseModel):
    """Request model for a quiz result submission.

    `score` and `max_score` are only range-checked against zero here; the
    ledger owns the `score <= max_score` rule so that it applies to every
    caller, not just HTTP clients. `submission_id` is an optional
    idempotency key.
    """
    activity_id: int
    score: int = Field(ge=0, le=MAX_SCORE_VALUE)
    max_score: int = Field(ge=0, le=MAX_SCORE_VALUE)
    time_taken: Optional[float] = Field(default=None, ge=0)
    answers: AnswersPayload
    submission_id: Optional[str] = Field(default=None, max_length=128)


class ProgressOut(BaseModel):
    user_id: int
    subject: str
    activities_completed: int
    total_activities: int
    points: int
    badges: List[str]
    current_level: int
    updated_at: datetime


class AchievementOut(BaseModel):
    id: int
    user_id: int
    type: str
    name: str
    subject: Optional[str] = None
    earned_at: datetime


class SubmissionOut(BaseModel):
    """Response for `POST /quiz-results`."""
    progress: ProgressOut
    points_earned: int
    new_achievements: List[AchievementOut]
    duplicate: bool = False
