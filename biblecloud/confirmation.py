from __future__ import annotations

import threading
from enum import Enum
from typing import Callable, Optional, TypeVar

from .errors import ConfirmationError

T = TypeVar("T")


class ConfirmationState(str, Enum):
    IDLE = "idle"
    PENDING_CONFIRMATION = "pending_confirmation"
    EXECUTING = "executing"


class UnreadConfirmation:
    """Two-phase guard for marking a chapter unread.

    ``request`` arms the confirmation for a chapter, ``confirm`` runs the
    destructive action for that same chapter, ``cancel`` disarms it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = ConfirmationState.IDLE
        self._chapter_id: Optional[str] = None

    @property
    def state(self) -> ConfirmationState:
        return self._state

    @property
    def chapter_id(self) -> Optional[str]:
        return self._chapter_id

    def is_pending(self, chapter_id: str) -> bool:
        return self._state is ConfirmationState.PENDING_CONFIRMATION and self._chapter_id == chapter_id

    def request(self, chapter_id: str) -> None:
        with self._lock:
            if self._state is ConfirmationState.EXECUTING:
                raise ConfirmationError("Unread already in progress")
            self._state = ConfirmationState.PENDING_CONFIRMATION
            self._chapter_id = chapter_id

    def cancel(self) -> None:
        with self._lock:
            if self._state is ConfirmationState.EXECUTING:
                raise ConfirmationError("Unread already in progress")
            self._state = ConfirmationState.IDLE
            self._chapter_id = None

    def reset(self) -> None:
        """Disarm a pending confirmation; a running unread returns to IDLE when it finishes."""
        with self._lock:
            if self._state is ConfirmationState.PENDING_CONFIRMATION:
                self._state = ConfirmationState.IDLE
                self._chapter_id = None

    def confirm(self, chapter_id: str, action: Callable[[], T]) -> T:
        with self._lock:
            if not self.is_pending(chapter_id):
                raise ConfirmationError(f"No pending unread confirmation for {chapter_id}")
            self._state = ConfirmationState.EXECUTING
        try:
            return action()
        finally:
            with self._lock:
                self._state = ConfirmationState.IDLE
                self._chapter_id = None
