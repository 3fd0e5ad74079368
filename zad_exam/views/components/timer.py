"""
views/components/timer.py

Remaining-time display for the exam header.
Red under 10 minutes, yellow under 30, green otherwise.
"""

from typing import Any, Dict

from zad_exam.services.exam_service import split_minutes_seconds

_DANGER_SECONDS = 10 * 60
_WARNING_SECONDS = 30 * 60


def render(remaining: int, running: bool = True) -> Dict[str, Any]:
    """
    Args:
        remaining: seconds left (already clamped at 0).
        running:   False before the pledge and after the timer stopped.

    Returns:
        {"remaining_seconds", "minutes", "seconds", "text", "level", "running", "expired"}
    """
    minutes, seconds = split_minutes_seconds(remaining)
    if remaining < _DANGER_SECONDS:
        level = "danger"
    elif remaining < _WARNING_SECONDS:
        level = "warning"
    else:
        level = "ok"

    return {
        "remaining_seconds": remaining,
        "minutes": minutes,
        "seconds": seconds,
        "text": f"{minutes:02d}:{seconds:02d}",
        "level": level,
        "running": running,
        "expired": remaining == 0,
    }


def format_duration(minutes: int) -> str:
    """Exam duration for the info panel: "H:MM" from one hour up, else "N دقيقة"."""
    hours, mins = divmod(int(minutes), 60)
    if hours > 0:
        return f"{hours}:{mins:02d}"
    return f"{mins} دقيقة"
