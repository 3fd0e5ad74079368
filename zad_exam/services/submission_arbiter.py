"""
services/submission_arbiter.py

Exactly one accepted submission per exam session.

Four triggers may race: the manual submit button, the timeout auto-submit,
the exit modal's "leave and submit", and the pagehide beacon. Each one
starts with a synchronous test-and-set of `ExamState.status`; the first
wins and the others become no-ops. Everything runs on one asyncio event
loop, so that check-and-set needs no lock as long as it happens before the
first `await`.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Set

from config import EXAMS_LIST_PATH
from zad_exam.models.session_state import SessionPhase, SessionStatus
from zad_exam.services.backend_client import BackendError, SubmissionRejectedError
from zad_exam.services.exam_service import build_submission_payload

if TYPE_CHECKING:
    from zad_exam.services.session_controller import ExamSessionController

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "تم تسليم الامتحان بنجاح!"


class SubmitTrigger(str, Enum):
    MANUAL = "manual"
    TIMEOUT = "timeout"
    EXIT_CONFIRM = "exit_confirm"
    PAGEHIDE = "pagehide"


def format_submission_error(error: BackendError) -> str:
    """Server message, plus lesson progress when the refusal is about prerequisites."""
    message = error.message
    if isinstance(error, SubmissionRejectedError) and error.completed_lessons is not None:
        message = (
            f"{message}\n\nالدروس المكتملة: {error.completed_lessons} "
            f"من {error.total_lessons if error.total_lessons is not None else 0}"
        )
    return message


class SubmissionArbiter:
    """
    Owns the submission lifecycle of one ExamSessionController.

    Attributes:
        requests_issued: attempt requests sent so far (beacon included).
    """

    def __init__(self, session: "ExamSessionController"):
        self._session = session
        self.requests_issued = 0
        self._background: Set[asyncio.Task] = set()

    def _try_acquire(self, trigger: SubmitTrigger) -> bool:
        # must stay free of awaits
        state = self._session.state
        if not state.pledge_accepted:
            logger.info(f"exam {self._session.exam_id}: {trigger.value} submit ignored (pledge not accepted)")
            return False
        if state.status != SessionStatus.ACTIVE:
            logger.info(
                f"exam {self._session.exam_id}: {trigger.value} submit ignored (status={state.status.value})"
            )
            return False
        state.status = (
            SessionStatus.SUBMITTED if trigger == SubmitTrigger.PAGEHIDE else SessionStatus.SUBMITTING
        )
        return True

    def _payload(self) -> dict:
        session = self._session
        return build_submission_payload(session.exam.questions, session.state.answers)

    async def submit(self, trigger: SubmitTrigger) -> bool:
        """
        Submit the current answers for `trigger`.

        Returns:
            True  — this call's submission was accepted.
            False — another trigger already owns the submission, or the
                    request failed and the status was rolled back.
        """
        if trigger == SubmitTrigger.PAGEHIDE:
            return self.submit_best_effort()
        if self._session.exam is None or not self._try_acquire(trigger):
            return False

        session = self._session
        state = session.state
        payload = self._payload()
        self.requests_issued += 1
        logger.info(
            f"exam {session.exam_id}: submitting ({trigger.value}, {len(payload)}/{len(session.exam.questions)} answered)"
        )

        try:
            await session.client.submit_attempt(session.exam_id, payload)
        except BackendError as e:
            state.status = SessionStatus.ACTIVE
            message = format_submission_error(e)
            state.last_error = message
            session.effects.toast("error", message)
            logger.warning(f"exam {session.exam_id}: {trigger.value} submit failed, rolled back - {e.message}")
            return False
        except BaseException:
            state.status = SessionStatus.ACTIVE
            raise

        state.status = SessionStatus.SUBMITTED
        state.phase = SessionPhase.FINISHED
        state.confirm_submit = False
        state.last_error = None
        session.on_submitted()
        session.effects.toast("success", SUCCESS_MESSAGE)
        if trigger != SubmitTrigger.EXIT_CONFIRM:
            session.effects.navigate(EXAMS_LIST_PATH)
        logger.info(f"exam {session.exam_id}: submission accepted ({trigger.value})")
        return True

    def submit_best_effort(self) -> bool:
        """
        Fire-and-forget submission for a page that is going away.

        Marks the session submitted immediately and never rolls back; the
        request runs as a background task whose outcome nobody awaits.
        """
        if self._session.exam is None or not self._try_acquire(SubmitTrigger.PAGEHIDE):
            return False

        session = self._session
        session.state.phase = SessionPhase.FINISHED
        session.on_submitted()
        payload = self._payload()
        self.requests_issued += 1
        logger.info(f"exam {session.exam_id}: pagehide best-effort submit ({len(payload)} answered)")

        task = asyncio.get_running_loop().create_task(
            session.client.submit_attempt_best_effort(session.exam_id, payload)
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return True

    async def wait_background(self) -> None:
        """Let pending best-effort requests finish (shutdown and tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
