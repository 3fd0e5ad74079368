"""
views/effects.py

UI side effects the page shell must apply (navigate, toast, history push...).
Services queue them; the API drains them into every response.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class EffectKind(str, Enum):
    NAVIGATE = "navigate"
    TOAST = "toast"
    PUSH_HISTORY = "push_history"
    HISTORY_BACK = "history_back"
    REPLAY_CLICK = "replay_click"
    PLAY_WARNING = "play_warning"
    OPEN_EXIT_MODAL = "open_exit_modal"
    CLOSE_EXIT_MODAL = "close_exit_modal"


class Effect(BaseModel):
    kind: EffectKind
    url: Optional[str] = None
    element_id: Optional[str] = None
    level: Optional[str] = None
    message: Optional[str] = None
    # (frequency Hz, duration ms) per tone, for PLAY_WARNING
    tones: Optional[List[List[int]]] = None


# three short beeps
WARNING_TONES = [[880, 200], [880, 200], [880, 200]]


class EffectQueue:
    """FIFO of pending effects for one exam page."""

    def __init__(self) -> None:
        self._items: List[Effect] = []

    def push(self, kind: EffectKind, **fields) -> Effect:
        effect = Effect(kind=kind, **fields)
        self._items.append(effect)
        return effect

    def navigate(self, url: str) -> Effect:
        return self.push(EffectKind.NAVIGATE, url=url)

    def toast(self, level: str, message: str) -> Effect:
        return self.push(EffectKind.TOAST, level=level, message=message)

    def drain(self) -> List[Effect]:
        items, self._items = self._items, []
        return items

    def peek(self) -> List[Effect]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)
