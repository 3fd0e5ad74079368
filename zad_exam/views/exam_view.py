"""
views/exam_view.py — exam page view model

Layout (as the page shell renders it):
  - blocking full-page state with a single way back, or
  - header (exam info + timer) + pledge gate, or
  - header + question cards + progress panel + submit / exit modals

Built from the controller's state on every request; nothing is cached.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from config import COURSE_PATH_TEMPLATE, EXAMS_LIST_PATH
from zad_exam.models.exam_model import Exam
from zad_exam.models.session_state import SessionPhase, SessionStatus
from zad_exam.services.exam_service import lesson_progress_percent
from zad_exam.views.components import question_card as qcard
from zad_exam.views.components import sidebar as nav
from zad_exam.views.components import timer as tmr

if TYPE_CHECKING:
    from zad_exam.services.session_controller import ExamSessionController

PLEDGE_TEXT = (
    "أتعهد بأن أجيب على أسئلة هذا الامتحان بنفسي، دون الاستعانة بأي شخص أو مصدر خارجي، "
    "وأن لا أغادر صفحة الامتحان قبل التسليم."
)

BACK_TO_EXAMS = {"label": "العودة إلى الامتحانات", "url": EXAMS_LIST_PATH}

_BLOCKING_MESSAGES = {
    SessionPhase.NOT_FOUND: "الامتحان غير موجود",
    SessionPhase.LOAD_FAILED: "حدث خطأ أثناء تحميل الامتحان",
    SessionPhase.ALREADY_ATTEMPTED: "لقد قمت بإجراء هذا الامتحان مسبقاً",
    SessionPhase.NOT_STARTED: "الامتحان لم يبدأ بعد",
    SessionPhase.ENDED: "الامتحان انتهى",
    SessionPhase.PREREQUISITES_UNMET: "لا يمكنك إجراء هذا الامتحان حتى تكمل جميع دروس الدورة",
}


def _exam_info(exam: Exam) -> Dict[str, Any]:
    return {
        "id": exam.id,
        "title": exam.title,
        "description": exam.description,
        "duration_minutes": exam.duration_minutes,
        "duration_text": tmr.format_duration(exam.duration_minutes),
        "max_score": exam.max_score,
        "passing_score": exam.passing_score,
        "question_count": len(exam.questions),
        "start_date": exam.start_date.isoformat(),
        "end_date": exam.end_date.isoformat(),
        "course": exam.course.model_dump() if exam.course else None,
    }


def _blocking(phase: SessionPhase, exam: Optional[Exam]) -> Dict[str, Any]:
    view: Dict[str, Any] = {
        "message": _BLOCKING_MESSAGES[phase],
        "back": BACK_TO_EXAMS,
    }
    if exam is None:
        return view

    if phase == SessionPhase.NOT_STARTED:
        view["starts_at"] = exam.start_date.isoformat()
    elif phase == SessionPhase.ENDED:
        view["ended_at"] = exam.end_date.isoformat()
    elif phase == SessionPhase.PREREQUISITES_UNMET:
        view["title"] = "⚠️ يجب إكمال جميع دروس الدورة"
        view["lessons"] = {
            "completed": exam.completed_lessons,
            "total": exam.total_lessons,
            "percent": lesson_progress_percent(exam),
            "label": f"الدروس المكتملة: {exam.completed_lessons} من {exam.total_lessons}",
        }
        course_id = exam.course.id if exam.course else ""
        view["back"] = {
            "label": "العودة إلى الدورة",
            "url": COURSE_PATH_TEMPLATE.format(course_id=course_id),
        }
    return view


def build_view(session: "ExamSessionController") -> Dict[str, Any]:
    """
    View model of the exam page.

    Question cards (and therefore answer inputs) only appear once the
    pledge has been accepted.
    """
    state = session.state
    exam = session.exam
    view: Dict[str, Any] = {
        "exam_id": session.exam_id,
        "phase": state.phase.value,
        "status": state.status.value,
        "last_error": state.last_error,
    }

    if state.phase in _BLOCKING_MESSAGES:
        view["blocking"] = _blocking(state.phase, exam)
        if exam is not None:
            view["exam"] = _exam_info(exam)
        return view
    if exam is None:
        return view

    view["exam"] = _exam_info(exam)
    remaining = session.remaining_seconds()

    if state.phase == SessionPhase.PLEDGE:
        view["pledge"] = {"text": PLEDGE_TEXT, "accepted": False}
        view["timer"] = tmr.render(remaining, running=False)
        return view

    view["pledge"] = {"text": PLEDGE_TEXT, "accepted": True}
    view["timer"] = tmr.render(remaining, running=not state.timer_stopped)
    view["questions"] = [
        qcard.render(q, idx + 1, state.answers.get(q.id))
        for idx, q in enumerate(exam.questions)
    ]
    if not exam.questions:
        view["empty_message"] = "لا توجد أسئلة في هذا الامتحان"
    view["progress"] = nav.render(exam.questions, state.answers)

    unanswered = view["progress"]["unanswered"]
    view["submit_confirm"] = {
        "open": state.confirm_submit,
        "unanswered": unanswered,
        "message": f"لديك {unanswered} سؤال غير مجاب. هل تريد المتابعة والتسليم؟",
    }
    view["exit_modal"] = {
        "open": state.exit_modal_open,
        "message": "إذا غادرت الصفحة الآن سيتم تسليم الامتحان بإجاباتك الحالية.",
    }
    view["guard_active"] = session.guard.active
    view["submitting"] = state.status == SessionStatus.SUBMITTING
    return view
