"""
api/session.py — per-browser in-memory sessions (cookie based)

Every browser gets a UUID session id; each session keeps its own exam
controllers keyed by exam id. Sessions expire after SESSION_TTL seconds
without a request.
"""

import threading
import time
import uuid
from typing import Any, Dict, List, Optional

from config import SESSION_TTL

_lock = threading.Lock()
_sessions: dict[str, dict[str, Any]] = {}
_timestamps: dict[str, float] = {}


def _new_state() -> dict[str, Any]:
    return {
        "controllers": {},
    }


def create_session() -> str:
    """Create a session and return its id."""
    sid = uuid.uuid4().hex
    with _lock:
        _sessions[sid] = _new_state()
        _timestamps[sid] = time.time()
    return sid


def _live_session(sid: str) -> dict[str, Any] | None:
    # caller holds _lock
    if sid not in _sessions:
        return None
    if time.time() - _timestamps[sid] > SESSION_TTL:
        # the periodic sweep closes its controllers
        return None
    _timestamps[sid] = time.time()
    return _sessions[sid]


def get_session(sid: str) -> dict[str, Any] | None:
    """Session data for `sid`, or None when unknown or expired."""
    with _lock:
        return _live_session(sid)


def get_controller(sid: str, exam_id: str) -> Optional[Any]:
    with _lock:
        session = _live_session(sid)
        if session is None:
            return None
        return session["controllers"].get(str(exam_id))


def set_controller(sid: str, exam_id: str, controller) -> Optional[Any]:
    """Store `controller` for `exam_id`; returns the one it replaced, if any."""
    with _lock:
        if sid not in _sessions:
            return None
        controllers = _sessions[sid]["controllers"]
        previous = controllers.get(str(exam_id))
        controllers[str(exam_id)] = controller
        _timestamps[sid] = time.time()
        return previous


def pop_controller(sid: str, exam_id: str) -> Optional[Any]:
    with _lock:
        if sid not in _sessions:
            return None
        return _sessions[sid]["controllers"].pop(str(exam_id), None)


def pop_expired() -> List[Dict[str, Any]]:
    """Remove expired sessions and return their data so the caller can close controllers."""
    now = time.time()
    removed = []
    with _lock:
        expired = [sid for sid, ts in _timestamps.items() if now - ts > SESSION_TTL]
        for sid in expired:
            removed.append(_sessions.pop(sid))
            del _timestamps[sid]
    return removed


def pop_all() -> List[Dict[str, Any]]:
    """Remove every session (application shutdown)."""
    with _lock:
        removed = list(_sessions.values())
        _sessions.clear()
        _timestamps.clear()
    return removed
