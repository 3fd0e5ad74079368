"""
services/exam_service.py

Pure business rules for taking an exam.
Plain Python functions: no I/O, no global state, time is always passed in.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from zad_exam.models.exam_model import Exam, Question


class Availability(str, Enum):
    AVAILABLE = "available"
    ALREADY_ATTEMPTED = "already_attempted"
    NOT_STARTED = "not_started"
    ENDED = "ended"
    PREREQUISITES_UNMET = "prerequisites_unmet"


class ReviewAvailability(str, Enum):
    OPEN = "open"
    EXAM_NOT_ENDED = "exam_not_ended"
    NOT_ATTEMPTED = "not_attempted"
    NOT_PASSED = "not_passed"
    ANSWERS_UNAVAILABLE = "answers_unavailable"


# ── Answer state ─────────────────────────────────────────────────────────────

def empty_answer(question: Question) -> Any:
    """Unanswered sentinel: None for multiple choice, "" for text and essay."""
    return None if question.is_multiple_choice else ""


def initial_answers(questions: List[Question]) -> Dict[str, Any]:
    """One sentinel entry per question."""
    return {q.id: empty_answer(q) for q in questions}


def is_answered_value(value: Any) -> bool:
    """
    True if `value` counts as an answer.

    None is unanswered. Strings are unanswered when blank after trimming.
    Anything else (e.g. a choice index, including 0) is answered.
    """
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def unanswered_questions(
    questions: List[Question],
    answers: Mapping[str, Any],
) -> List[Question]:
    return [q for q in questions if not is_answered_value(answers.get(q.id))]


def unanswered_count(questions: List[Question], answers: Mapping[str, Any]) -> int:
    return len(unanswered_questions(questions, answers))


def answered_count(questions: List[Question], answers: Mapping[str, Any]) -> int:
    return len(questions) - unanswered_count(questions, answers)


def build_submission_payload(
    questions: List[Question],
    answers: Mapping[str, Any],
) -> Dict[str, Any]:
    """
    Answers to send to POST /exams/{id}/attempt.

    Only questions the user actually answered are included; unanswered ones
    are omitted rather than sent as null or "" so the server can tell
    "skipped" apart from an answer. Question order is preserved.

    Args:
        questions: the exam's questions.
        answers:   current answer state.

    Returns:
        {question_id: value} for answered questions only.
    """
    payload: Dict[str, Any] = {}
    for q in questions:
        value = answers.get(q.id)
        if is_answered_value(value):
            payload[q.id] = value
    return payload


# ── Timer ────────────────────────────────────────────────────────────────────

def remaining_seconds(duration_minutes: int, started_at: datetime, now: datetime) -> int:
    """
    Seconds left, recomputed from the absolute start instant.

    Never decremented tick by tick, so late or skipped ticks cannot drift the
    clock. Clamped at 0.
    """
    elapsed = int((now - started_at).total_seconds())
    return max(0, duration_minutes * 60 - max(0, elapsed))


def split_minutes_seconds(seconds: int) -> Tuple[int, int]:
    seconds = max(0, int(seconds))
    return seconds // 60, seconds % 60


def crossed_warning_threshold(previous: Optional[int], current: int, threshold: int) -> bool:
    """
    True when remaining time moves from above `threshold` to at or below it.

    A session whose duration is already at or below the threshold never
    crosses it.
    """
    if previous is None:
        return False
    return previous > threshold >= current


# ── Availability ─────────────────────────────────────────────────────────────

def check_availability(exam: Exam, now: datetime) -> Availability:
    """
    Blocking conditions evaluated before the pledge gate.

    Order of checks: prior attempt, window start, window end, prerequisites.
    The window is inclusive at both ends: `now == start_date` is available.
    """
    if exam.has_attempts:
        return Availability.ALREADY_ATTEMPTED
    if now < exam.start_date:
        return Availability.NOT_STARTED
    if now > exam.end_date:
        return Availability.ENDED
    if exam.course_completion_required and not exam.all_lessons_completed:
        return Availability.PREREQUISITES_UNMET
    return Availability.AVAILABLE


def lesson_progress_percent(exam: Exam) -> float:
    if not exam.total_lessons:
        return 0.0
    return round(exam.completed_lessons / exam.total_lessons * 100, 1)


def review_availability(exam: Exam, now: datetime) -> ReviewAvailability:
    """
    Whether the answer review page may be shown.

    Review opens only after the exam window closed, for a user whose
    attempt was graded at or above the passing score, and only when the
    backend actually included correct answers or explanations.
    """
    if now <= exam.end_date:
        return ReviewAvailability.EXAM_NOT_ENDED
    if not exam.attempts:
        return ReviewAvailability.NOT_ATTEMPTED
    attempt = exam.attempts[0]
    if attempt.score is None or attempt.score < exam.passing_score:
        return ReviewAvailability.NOT_PASSED
    if not any(q.correct_index is not None or q.explanation for q in exam.questions):
        return ReviewAvailability.ANSWERS_UNAVAILABLE
    return ReviewAvailability.OPEN


def build_review(exam: Exam) -> List[Dict[str, Any]]:
    """Per-question review rows: the user's answer next to the correct one."""
    user_answers = exam.attempts[0].parsed_answers() if exam.attempts else {}
    rows = []
    for q in exam.questions:
        user_answer = user_answers.get(q.id)
        is_correct = None
        if q.is_multiple_choice and q.correct_index is not None:
            is_correct = user_answer == q.correct_index
        rows.append({
            "question_id": q.id,
            "prompt": q.prompt,
            "type": q.type.value,
            "choices": q.choices,
            "user_answer": user_answer,
            "correct_index": q.correct_index,
            "explanation": q.explanation,
            "is_correct": is_correct,
            "points": q.points,
        })
    return rows
