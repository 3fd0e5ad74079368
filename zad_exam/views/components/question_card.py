"""
views/components/question_card.py

One question as the page renders it. Correct answers are never included.
"""

from typing import Any, Dict, Optional

from zad_exam.models.exam_model import Question
from zad_exam.services.exam_service import is_answered_value


def render(
    question: Question,
    question_number: int,
    answer: Optional[Any] = None,
) -> Dict[str, Any]:
    """
    Args:
        question:        question to render.
        question_number: 1-based position for the "السؤال N" header.
        answer:          current value from the answer mapping.
    """
    return {
        "id": question.id,
        "number": question_number,
        "title": f"السؤال {question_number} ({question.points:g} نقطة)",
        "prompt": question.prompt,
        "type": question.type.value,
        "choices": question.choices if question.is_multiple_choice else [],
        "points": question.points,
        "answer": answer,
        "answered": is_answered_value(answer),
    }
