"""
models/exam_model.py

Exam content as served by the platform backend (GET /exams/{id}).
Pydantic v2 models; the backend speaks camelCase, so every field carries an alias.
Read-only for the lifetime of an exam session.
"""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    SHORT_TEXT = "short_text"
    ESSAY = "essay"


# Backend enum spellings -> QuestionType
_TYPE_ALIASES = {
    "multiple_choice": QuestionType.MULTIPLE_CHOICE,
    "text": QuestionType.SHORT_TEXT,
    "short_text": QuestionType.SHORT_TEXT,
    "essay": QuestionType.ESSAY,
}


def parse_choices(raw: Any) -> List[str]:
    """
    Normalise the `choices` field into a list of strings.

    The backend may store choices as a JSON-encoded string. Malformed JSON,
    a JSON value that is not a list, or a missing value all degrade to an
    empty list instead of failing the whole exam.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse choices: {e}")
            return []
    if not isinstance(raw, (list, tuple)):
        return []
    return [str(c) for c in raw]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        # naive timestamps from the backend are UTC
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Question(BaseModel):
    """
    A single exam question.

    `correct_index` is only present for reviews and is never used for
    scoring here; grading happens server-side.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., description="Question identifier")
    prompt: str = Field("", description="Question text")
    type: QuestionType = Field(
        QuestionType.MULTIPLE_CHOICE,
        description="multiple_choice, short_text or essay",
    )
    choices: List[str] = Field(
        default_factory=list,
        description="Ordered choices (multiple_choice only)",
    )
    correct_index: Optional[int] = Field(None, alias="correctIndex")
    explanation: Optional[str] = None
    points: float = Field(0, description="Point value")
    order: int = Field(0, description="Position within the exam")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> str:
        return str(v)

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, v: Any) -> QuestionType:
        if v is None or v == "":
            return QuestionType.MULTIPLE_CHOICE
        if isinstance(v, QuestionType):
            return v
        try:
            return _TYPE_ALIASES[str(v).strip().lower()]
        except KeyError:
            # answerable as free text
            logger.warning(f"Unknown question type {v!r}, treating as short_text")
            return QuestionType.SHORT_TEXT

    @field_validator("choices", mode="before")
    @classmethod
    def _parse_choices(cls, v: Any) -> List[str]:
        return parse_choices(v)

    @property
    def is_multiple_choice(self) -> bool:
        return self.type == QuestionType.MULTIPLE_CHOICE


class CourseRef(BaseModel):
    id: str
    title: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> str:
        return str(v)


class Attempt(BaseModel):
    """A recorded attempt of the current user (review/reload detection)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    answers: Union[Dict[str, Any], str, None] = None
    score: Optional[float] = None
    status: str = ""
    submitted_at: Optional[datetime] = Field(None, alias="submittedAt")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> str:
        return "" if v is None else str(v)

    def parsed_answers(self) -> Dict[str, Any]:
        """Answers as a dict; a JSON string is decoded, anything malformed is {}."""
        if isinstance(self.answers, dict):
            return dict(self.answers)
        if isinstance(self.answers, str):
            try:
                data = json.loads(self.answers)
            except json.JSONDecodeError:
                return {}
            return data if isinstance(data, dict) else {}
        return {}


class Exam(BaseModel):
    """
    Exam fetched once per session.

    Attributes:
        duration_minutes: time allowed after the pledge is accepted.
        start_date / end_date: availability window, inclusive at both ends.
        course_completion_required / all_lessons_completed: prerequisite flags.
        attempts: the current user's recorded attempts (non-empty = already taken).
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = ""
    description: Optional[str] = None
    duration_minutes: int = Field(..., alias="durationMinutes", ge=0)
    start_date: datetime = Field(..., alias="startDate")
    end_date: datetime = Field(..., alias="endDate")
    max_score: float = Field(0, alias="maxScore")
    passing_score: float = Field(0, alias="passingScore")
    questions: List[Question] = Field(default_factory=list)
    course: Optional[CourseRef] = None
    course_completion_required: bool = Field(False, alias="courseCompletionRequired")
    all_lessons_completed: bool = Field(True, alias="allLessonsCompleted")
    completed_lessons: int = Field(0, alias="completedLessons")
    total_lessons: int = Field(0, alias="totalLessons")
    attempts: List[Attempt] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> str:
        return str(v)

    @field_validator("questions", "attempts", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("completed_lessons", "total_lessons", mode="before")
    @classmethod
    def _none_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("all_lessons_completed", mode="before")
    @classmethod
    def _missing_completion_is_true(cls, v: Any) -> Any:
        return True if v is None else v

    @field_validator("start_date", "end_date")
    @classmethod
    def _to_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @model_validator(mode="after")
    def _order_questions(self) -> "Exam":
        self.questions = sorted(self.questions, key=lambda q: q.order)
        return self

    @property
    def has_attempts(self) -> bool:
        return bool(self.attempts)

    @property
    def question_ids(self) -> List[str]:
        return [q.id for q in self.questions]

    def get_question(self, question_id: str) -> Optional[Question]:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None
