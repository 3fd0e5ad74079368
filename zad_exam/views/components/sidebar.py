"""
views/components/sidebar.py

Progress panel: answered count and one badge per question.
"""

from typing import Any, Dict, List, Mapping

from zad_exam.models.exam_model import Question
from zad_exam.services.exam_service import is_answered_value


def render(questions: List[Question], answers: Mapping[str, Any]) -> Dict[str, Any]:
    total = len(questions)
    badges = [
        {"id": q.id, "number": idx + 1, "answered": is_answered_value(answers.get(q.id))}
        for idx, q in enumerate(questions)
    ]
    answered = sum(1 for b in badges if b["answered"])
    return {
        "total": total,
        "answered": answered,
        "unanswered": total - answered,
        "ratio": answered / total if total > 0 else 0,
        "label": f"تم الإجابة على {answered} من {total} سؤال",
        "badges": badges,
    }
