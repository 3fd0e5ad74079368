"""
services/session_controller.py

One exam-taking session: load, pledge gate, countdown, answers, submit.

Lifecycle:
  load() ─► blocking state (not found / attempted / window / prerequisites)
         └► PLEDGE ─ accept_pledge() ─► IN_PROGRESS ─ submit ─► FINISHED

The controller owns the answer mapping and the session status; the
NavigationGuard and SubmissionArbiter work on that same state.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from config import EXAMS_LIST_PATH, TICK_INTERVAL, WARNING_THRESHOLD_SECONDS
from zad_exam.models.exam_model import Exam
from zad_exam.models.session_state import ExamState, SessionPhase, SessionStatus
from zad_exam.services.backend_client import BackendError, ExamBackendClient, ExamNotFoundError
from zad_exam.services.exam_service import (
    Availability,
    answered_count,
    check_availability,
    crossed_warning_threshold,
    initial_answers,
    is_answered_value,
    remaining_seconds as compute_remaining,
    unanswered_count,
)
from zad_exam.services.navigation_guard import NavigationGuard
from zad_exam.services.submission_arbiter import SubmissionArbiter, SubmitTrigger
from zad_exam.views.effects import WARNING_TONES, EffectKind, EffectQueue
from zad_exam.views.exam_view import build_view

logger = logging.getLogger(__name__)

_AVAILABILITY_PHASES = {
    Availability.ALREADY_ATTEMPTED: SessionPhase.ALREADY_ATTEMPTED,
    Availability.NOT_STARTED: SessionPhase.NOT_STARTED,
    Availability.ENDED: SessionPhase.ENDED,
    Availability.PREREQUISITES_UNMET: SessionPhase.PREREQUISITES_UNMET,
    Availability.AVAILABLE: SessionPhase.PLEDGE,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExamSessionController:
    """
    Args:
        exam_id:         exam to take.
        client:          backend client (auth already bound).
        clock:           returns the current aware datetime; injectable for tests.
        warning_player:  plays the five-minute warning; exceptions are logged and ignored.
        tick_interval:   seconds between timer ticks.
    """

    def __init__(
        self,
        exam_id: str,
        client: ExamBackendClient,
        clock: Optional[Callable[[], datetime]] = None,
        warning_player: Optional[Callable[[], None]] = None,
        tick_interval: float = TICK_INTERVAL,
    ):
        self.exam_id = str(exam_id)
        self.client = client
        self.exam: Optional[Exam] = None
        self.state = ExamState()
        self.effects = EffectQueue()
        self.guard = NavigationGuard(self)
        self.arbiter = SubmissionArbiter(self)
        self.tick_interval = tick_interval
        self._clock = clock or _utcnow
        self._warning_player = warning_player or self._queue_warning
        self._timer_task: Optional[asyncio.Task] = None
        self._last_remaining: Optional[int] = None

    def now(self) -> datetime:
        return self._clock()

    # ── Load ─────────────────────────────────────────────────────────────────

    async def load(self) -> SessionPhase:
        """
        Fetch the exam and decide which page state to show.

        A prior attempt marks the session submitted before anything else is
        initialised, so a reload after a pagehide submission cannot start a
        second attempt.
        """
        state = self.state
        try:
            exam = await self.client.fetch_exam(self.exam_id)
        except ExamNotFoundError:
            logger.warning(f"exam {self.exam_id}: not found")
            state.phase = SessionPhase.NOT_FOUND
            self.effects.navigate(EXAMS_LIST_PATH)
            return state.phase
        except BackendError as e:
            logger.error(f"exam {self.exam_id}: load failed - {e.message}")
            state.phase = SessionPhase.LOAD_FAILED
            state.last_error = e.message
            return state.phase

        self.exam = exam
        availability = check_availability(exam, self.now())
        state.phase = _AVAILABILITY_PHASES[availability]

        if availability == Availability.ALREADY_ATTEMPTED:
            state.status = SessionStatus.SUBMITTED
            self.effects.navigate(EXAMS_LIST_PATH)
            logger.info(f"exam {self.exam_id}: already attempted, leaving")
            return state.phase

        state.answers = initial_answers(exam.questions)
        logger.info(
            f"exam {self.exam_id}: loaded '{exam.title}' ({len(exam.questions)} questions) -> {state.phase.value}"
        )
        return state.phase

    # ── Pledge gate ──────────────────────────────────────────────────────────

    def accept_pledge(self, confirmed: bool) -> None:
        """
        Start the attempt. The timer counts from this instant, not from load.

        Raises:
            ValueError: the pledge box was not ticked or the exam is not at the pledge gate.
        """
        if not confirmed:
            raise ValueError("يجب الموافقة على التعهد قبل بدء الامتحان")
        if self.state.phase != SessionPhase.PLEDGE or self.exam is None:
            raise ValueError("لا يمكن بدء الامتحان في الحالة الحالية")

        state = self.state
        state.pledge_accepted = True
        state.started_at = self.now()
        state.answers = initial_answers(self.exam.questions)
        state.phase = SessionPhase.IN_PROGRESS
        self._last_remaining = self.exam.duration_minutes * 60
        self.guard.install()
        logger.info(f"exam {self.exam_id}: pledge accepted, {self.exam.duration_minutes} min")
        self.start_timer()

    def start_timer(self) -> None:
        """
        Run tick() every `tick_interval` seconds on the running event loop.
        Without a running loop ticks are driven by the caller.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._timer_task is None or self._timer_task.done():
            self._timer_task = loop.create_task(self._run_timer())

    async def _run_timer(self) -> None:
        while not self.state.timer_stopped and self.state.status != SessionStatus.SUBMITTED:
            await asyncio.sleep(self.tick_interval)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"exam {self.exam_id}: timer tick failed")

    # ── Timer ────────────────────────────────────────────────────────────────

    def remaining_seconds(self, now: Optional[datetime] = None) -> int:
        if self.exam is None or self.state.started_at is None:
            return self.exam.duration_minutes * 60 if self.exam else 0
        return compute_remaining(self.exam.duration_minutes, self.state.started_at, now or self.now())

    async def tick(self, now: Optional[datetime] = None) -> int:
        """
        One timer step: recompute remaining time, play the five-minute
        warning once, auto-submit once at zero.

        Returns:
            Remaining seconds.
        """
        state = self.state
        if not state.pledge_accepted or state.timer_stopped:
            return self.remaining_seconds(now)

        remaining = self.remaining_seconds(now)
        if not state.warning_fired and crossed_warning_threshold(
            self._last_remaining, remaining, WARNING_THRESHOLD_SECONDS
        ):
            state.warning_fired = True
            self._play_warning()
        self._last_remaining = remaining

        if remaining == 0:
            state.timer_stopped = True
            logger.info(f"exam {self.exam_id}: time is up")
            await self.arbiter.submit(SubmitTrigger.TIMEOUT)
        return remaining

    def _play_warning(self) -> None:
        try:
            self._warning_player()
        except Exception as e:
            logger.warning(f"exam {self.exam_id}: could not play time warning - {e}")

    def _queue_warning(self) -> None:
        self.effects.push(EffectKind.PLAY_WARNING, tones=WARNING_TONES)

    # ── Answers ──────────────────────────────────────────────────────────────

    def set_answer(self, question_id: str, value: Any) -> None:
        """
        Replace one answer. Values are not validated here.

        Raises:
            KeyError:   unknown question id.
            ValueError: no attempt in progress.
        """
        state = self.state
        if not state.pledge_accepted or state.status == SessionStatus.SUBMITTED:
            raise ValueError("لا يوجد امتحان قيد التقدم")
        question_id = str(question_id)
        if question_id not in state.answers:
            raise KeyError(question_id)
        state.answers[question_id] = value

    def is_answered(self, question_id: str) -> bool:
        return is_answered_value(self.state.answers.get(str(question_id)))

    def unanswered_count(self) -> int:
        if self.exam is None:
            return 0
        return unanswered_count(self.exam.questions, self.state.answers)

    def answered_count(self) -> int:
        if self.exam is None:
            return 0
        return answered_count(self.exam.questions, self.state.answers)

    # ── Manual submit ────────────────────────────────────────────────────────

    async def request_submit(self) -> Dict[str, Any]:
        """
        Submit button. With unanswered questions left, open a confirmation
        instead of submitting.
        """
        if not self.state.pledge_accepted:
            raise ValueError("لا يوجد امتحان قيد التقدم")
        unanswered = self.unanswered_count()
        if unanswered > 0:
            self.state.confirm_submit = True
            return {"submitted": False, "confirm_required": True, "unanswered": unanswered}
        submitted = await self.arbiter.submit(SubmitTrigger.MANUAL)
        return {"submitted": submitted, "confirm_required": False, "unanswered": 0}

    async def confirm_submit(self) -> Dict[str, Any]:
        if not self.state.pledge_accepted:
            raise ValueError("لا يوجد امتحان قيد التقدم")
        self.state.confirm_submit = False
        submitted = await self.arbiter.submit(SubmitTrigger.MANUAL)
        return {"submitted": submitted, "confirm_required": False, "unanswered": self.unanswered_count()}

    def cancel_submit(self) -> None:
        self.state.confirm_submit = False

    # ── Teardown ─────────────────────────────────────────────────────────────

    def on_submitted(self) -> None:
        """Called by the arbiter once the status is SUBMITTED."""
        self.state.timer_stopped = True
        self.guard.teardown()
        self._cancel_timer()

    def _cancel_timer(self) -> None:
        task = self._timer_task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def close(self) -> None:
        """Page unmounted: stop ticking and drop the guard."""
        self.guard.teardown()
        self._cancel_timer()
        await self.arbiter.wait_background()

    def snapshot(self) -> Dict[str, Any]:
        return build_view(self)
