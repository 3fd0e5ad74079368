"""
api/routes.py — FastAPI endpoints for the exam page shell

Every response carries the current view model plus the UI effects queued
since the previous response.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

import api.session as session
from zad_exam.services.backend_client import BackendError, ExamBackendClient
from zad_exam.services.exam_service import ReviewAvailability, build_review, review_availability
from zad_exam.services.navigation_guard import ClickTarget
from zad_exam.services.session_controller import ExamSessionController

router = APIRouter(prefix="/api/exams/{exam_id}")


# ── Pydantic request bodies ──────────────────────────────────────────────────

class PledgeBody(BaseModel):
    confirmed: bool = False


class AnswerBody(BaseModel):
    question_id: str
    value: Any = None


# ── Helpers ──────────────────────────────────────────────────────────────────

def _auth_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def _make_client(request: Request) -> ExamBackendClient:
    app_state = request.app.state
    return ExamBackendClient(
        base_url=app_state.backend_url,
        auth_token=_auth_token(request),
        transport=app_state.backend_transport,
    )


def _now(request: Request) -> datetime:
    clock = request.app.state.clock
    return clock() if clock is not None else datetime.now(timezone.utc)


def _controller(request: Request, exam_id: str) -> ExamSessionController:
    controller = session.get_controller(request.state.session_id, exam_id)
    if controller is None:
        raise HTTPException(status_code=404, detail="لم يتم تحميل الامتحان. أعد تحميل الصفحة.")
    return controller


def _respond(controller: ExamSessionController, **extra) -> dict:
    body = {
        "view": controller.snapshot(),
        "effects": [e.model_dump(exclude_none=True) for e in controller.effects.drain()],
    }
    body.update(extra)
    return body


# ── Session lifecycle ────────────────────────────────────────────────────────

@router.post("/load")
async def load_exam(exam_id: str, request: Request):
    """A fresh page load: any previous controller for this exam is closed first."""
    controller = ExamSessionController(
        exam_id,
        _make_client(request),
        clock=request.app.state.clock,
    )
    previous = session.set_controller(request.state.session_id, exam_id, controller)
    if previous is not None:
        await previous.close()
    await controller.load()
    return _respond(controller)


@router.get("/state")
async def get_state(exam_id: str, request: Request):
    """Polled by the page every second; ticks the timer so a sleeping loop cannot lag the display."""
    controller = _controller(request, exam_id)
    await controller.tick()
    return _respond(controller)


@router.delete("")
async def close_exam(exam_id: str, request: Request):
    controller = session.pop_controller(request.state.session_id, exam_id)
    if controller is not None:
        await controller.close()
    return {"ok": True}


@router.post("/pledge")
async def accept_pledge(exam_id: str, body: PledgeBody, request: Request):
    controller = _controller(request, exam_id)
    try:
        controller.accept_pledge(body.confirmed)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _respond(controller)


@router.post("/answers")
async def set_answer(exam_id: str, body: AnswerBody, request: Request):
    controller = _controller(request, exam_id)
    try:
        controller.set_answer(body.question_id, body.value)
    except KeyError:
        raise HTTPException(status_code=404, detail="السؤال غير موجود")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "ok": True,
        "answered": controller.is_answered(body.question_id),
        "answered_count": controller.answered_count(),
        "unanswered_count": controller.unanswered_count(),
    }


# ── Submission ───────────────────────────────────────────────────────────────

@router.post("/submit")
async def submit_exam(exam_id: str, request: Request):
    controller = _controller(request, exam_id)
    try:
        result = await controller.request_submit()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _respond(controller, **result)


@router.post("/submit/confirm")
async def confirm_submit(exam_id: str, request: Request):
    controller = _controller(request, exam_id)
    try:
        result = await controller.confirm_submit()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _respond(controller, **result)


@router.post("/submit/cancel")
async def cancel_submit(exam_id: str, request: Request):
    controller = _controller(request, exam_id)
    controller.cancel_submit()
    return _respond(controller)


# ── Browser exit vectors ─────────────────────────────────────────────────────

@router.post("/events/beforeunload")
async def before_unload(exam_id: str, request: Request):
    controller = _controller(request, exam_id)
    return {"prompt": controller.guard.on_before_unload()}


@router.post("/events/popstate")
async def popstate(exam_id: str, request: Request):
    controller = _controller(request, exam_id)
    intercepted = controller.guard.on_popstate()
    return _respond(controller, intercepted=intercepted)


@router.post("/events/click")
async def click(exam_id: str, target: ClickTarget, request: Request):
    controller = _controller(request, exam_id)
    allow = controller.guard.on_click(target)
    return _respond(controller, allow=allow)


@router.post("/events/pagehide")
async def pagehide(exam_id: str, request: Request):
    # sent with navigator.sendBeacon; nobody reads the response
    controller = session.get_controller(request.state.session_id, exam_id)
    if controller is None:
        return {"ok": False}
    return {"ok": controller.guard.on_pagehide()}


@router.post("/exit/stay")
async def exit_stay(exam_id: str, request: Request):
    controller = _controller(request, exam_id)
    controller.guard.stay()
    return _respond(controller)


@router.post("/exit/leave")
async def exit_leave(exam_id: str, request: Request):
    controller = _controller(request, exam_id)
    left = await controller.guard.leave_and_submit()
    return _respond(controller, submitted=left)


# ── Review ───────────────────────────────────────────────────────────────────

@router.get("/review")
async def review_exam(exam_id: str, request: Request):
    client = _make_client(request)
    try:
        exam = await client.fetch_exam(exam_id)
    except BackendError as e:
        raise HTTPException(status_code=e.status_code or 502, detail=e.message)

    availability = review_availability(exam, _now(request))
    body = {"availability": availability.value, "exam_id": exam.id, "title": exam.title}
    if availability == ReviewAvailability.OPEN:
        body.update({
            "score": exam.attempts[0].score,
            "max_score": exam.max_score,
            "passing_score": exam.passing_score,
            "questions": build_review(exam),
        })
    return body
