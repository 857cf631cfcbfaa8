"""Cooperative cancellation for research sessions.

The workflow driver checks the token at every step boundary; a step that is
already running finishes its external calls first.
"""

from __future__ import annotations

import threading
from typing import Optional

from stagewise.core.errors.research import ResearchCancelledError


class CancellationToken:
    """Thread-safe flag shared between a session runner and whoever may abandon it."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def raise_if_cancelled(self, session_id: Optional[str] = None) -> None:
        """Raise ResearchCancelledError if cancellation was requested."""
        if self._event.is_set():
            raise ResearchCancelledError(self._reason, session_id=session_id)
