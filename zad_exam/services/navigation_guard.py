"""
services/navigation_guard.py

Keeps the user from silently leaving an exam in progress.

The page shell forwards every browser exit vector here:
  - beforeunload : ask the browser for its native "leave site?" prompt
  - popstate     : re-push the history entry and open the exit modal
  - click        : cancel clicks that leave the exam container, stash them
  - pagehide     : last-resort best-effort submission

The guard is active only between pledge acceptance and submission;
`install()` / `teardown()` are the single on/off path.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional
from urllib.parse import urljoin, urlsplit

from pydantic import BaseModel, Field

from config import EXAMS_LIST_PATH
from zad_exam.models.session_state import IntentKind, PendingIntent, SessionStatus
from zad_exam.services.submission_arbiter import SubmitTrigger
from zad_exam.views.effects import EffectKind

if TYPE_CHECKING:
    from zad_exam.services.session_controller import ExamSessionController

logger = logging.getLogger(__name__)


class ClickTarget(BaseModel):
    """What the page's capturing click listener saw."""

    inside_exam: bool = Field(False, description="Target is inside the exam container")
    tag: str = Field("", description="Nearest anchor/button tag name, lower case")
    href: Optional[str] = Field(None, description="Anchor href attribute")
    element_id: Optional[str] = Field(None, description="Stable id used to replay the click")
    current_path: str = Field("", description="location.pathname of the exam page")


def is_leaving_href(href: Optional[str], current_path: str) -> bool:
    """
    True if following `href` would leave the current page.

    Empty, hash-only and javascript: links stay on the page, as does any
    link that resolves to the current path.
    """
    href = (href or "").strip()
    if not href or href.startswith("#") or href.lower().startswith("javascript:"):
        return False
    base = current_path or "/"
    target = urlsplit(urljoin(base, href))
    if target.netloc:
        return True
    return target.path.rstrip("/") != base.rstrip("/")


class NavigationGuard:
    def __init__(self, session: "ExamSessionController"):
        self._session = session
        self.installed = False

    # ── lifecycle ────────────────────────────────────────────────────────────

    def install(self) -> None:
        if self.installed:
            return
        self.installed = True
        logger.info(f"exam {self._session.exam_id}: navigation guard installed")

    def teardown(self) -> None:
        if not self.installed:
            return
        self.installed = False
        state = self._session.state
        if state.exit_modal_open:
            state.exit_modal_open = False
            self._session.effects.push(EffectKind.CLOSE_EXIT_MODAL)
        logger.info(f"exam {self._session.exam_id}: navigation guard removed")

    @property
    def active(self) -> bool:
        state = self._session.state
        return self.installed and state.pledge_accepted and state.status != SessionStatus.SUBMITTED

    # ── exit vectors ─────────────────────────────────────────────────────────

    def on_before_unload(self) -> bool:
        """True asks the browser to show its native confirmation."""
        return self.active

    def on_popstate(self) -> bool:
        """Back button. Returns True if the navigation was intercepted."""
        if not self.active:
            return False
        self._session.effects.push(EffectKind.PUSH_HISTORY)
        self._open_exit_modal(PendingIntent(kind=IntentKind.BACK))
        return True

    def on_click(self, target: ClickTarget) -> bool:
        """
        Decide whether a click may proceed.

        Returns:
            True  — let the default action happen.
            False — default cancelled, target stashed, exit modal opened.
        """
        if not self.active or target.inside_exam:
            return True

        tag = target.tag.lower()
        if tag == "a":
            if not is_leaving_href(target.href, target.current_path):
                return True
            intent = PendingIntent(kind=IntentKind.URL, url=target.href)
        elif tag == "button":
            intent = PendingIntent(kind=IntentKind.ELEMENT, element_id=target.element_id)
        else:
            return True

        self._open_exit_modal(intent)
        return False

    def on_pagehide(self) -> bool:
        """Tab close or hard navigation. True if a best-effort submit was fired."""
        if not self.active:
            return False
        return self._session.arbiter.submit_best_effort()

    # ── exit modal ───────────────────────────────────────────────────────────

    def _open_exit_modal(self, intent: PendingIntent) -> None:
        state = self._session.state
        state.pending_intent = intent
        if not state.exit_modal_open:
            state.exit_modal_open = True
            self._session.effects.push(EffectKind.OPEN_EXIT_MODAL)
        logger.info(f"exam {self._session.exam_id}: exit intercepted ({intent.kind.value})")

    def stay(self) -> None:
        state = self._session.state
        if state.exit_modal_open:
            state.exit_modal_open = False
            self._session.effects.push(EffectKind.CLOSE_EXIT_MODAL)

    async def leave_and_submit(self) -> bool:
        """
        Submit, then carry out what the user tried to do before the modal opened.

        Returns False (modal stays open) when the submission failed or
        another trigger already owns it, and also when the guard is not
        active (pledge gate, blocking states, already submitted).
        """
        if not self.active:
            return False
        intent = self._session.state.pending_intent
        if not await self._session.arbiter.submit(SubmitTrigger.EXIT_CONFIRM):
            return False

        self._session.state.pending_intent = None
        effects = self._session.effects
        if intent is None or (intent.kind == IntentKind.ELEMENT and not intent.element_id):
            # nothing the page could replay
            effects.navigate(EXAMS_LIST_PATH)
        elif intent.kind == IntentKind.URL:
            effects.navigate(intent.url)
        elif intent.kind == IntentKind.ELEMENT:
            effects.push(EffectKind.REPLAY_CLICK, element_id=intent.element_id)
        else:
            effects.push(EffectKind.HISTORY_BACK)
        return True
