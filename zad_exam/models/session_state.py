"""
models/session_state.py

Mutable state of one exam-taking session (one browser tab, one exam).
Pydantic BaseModel so the controller can hand out serialisable snapshots.
No I/O here.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class SessionStatus(str, Enum):
    """
    ACTIVE      — nothing submitted yet, triggers may submit.
    SUBMITTING  — a submission request is in flight.
    SUBMITTED   — accepted (or handed to the pagehide beacon); terminal.
    """

    ACTIVE = "active"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"


class SessionPhase(str, Enum):
    """Which full-page state the exam page is in."""

    LOADING = "loading"
    NOT_FOUND = "not_found"
    LOAD_FAILED = "load_failed"
    ALREADY_ATTEMPTED = "already_attempted"
    NOT_STARTED = "not_started"
    ENDED = "ended"
    PREREQUISITES_UNMET = "prerequisites_unmet"
    PLEDGE = "pledge"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"


class IntentKind(str, Enum):
    URL = "url"
    ELEMENT = "element"
    BACK = "back"


class PendingIntent(BaseModel):
    """Where the user was trying to go when the exit modal opened."""

    kind: IntentKind
    url: Optional[str] = None
    element_id: Optional[str] = None


class ExamState(BaseModel):
    """
    Session state for one exam attempt.

    Attributes:
        answers:           {question_id: value}; one entry per question once the pledge is accepted.
        status:            submission lifecycle, only moves forward except for a failed-submit rollback.
        started_at:        pledge acceptance instant (timezone-aware); the timer counts from here.
        warning_fired:     the five-minute warning has been played.
        timer_stopped:     remaining time reached zero and ticking stopped.
        confirm_submit:    the "unanswered questions" confirmation is open.
        exit_modal_open:   the exit-confirmation modal is open.
        pending_intent:    navigation stashed by the guard, replayed after a forced submit.
    """

    phase: SessionPhase = SessionPhase.LOADING
    answers: Dict[str, Any] = Field(default_factory=dict)
    status: SessionStatus = SessionStatus.ACTIVE
    pledge_accepted: bool = False
    started_at: Optional[datetime] = None
    warning_fired: bool = False
    timer_stopped: bool = False
    confirm_submit: bool = False
    exit_modal_open: bool = False
    pending_intent: Optional[PendingIntent] = None
    last_error: Optional[str] = None

    @property
    def is_submitted(self) -> bool:
        """True once a submission is in flight or accepted."""
        return self.status != SessionStatus.ACTIVE
