"""Deduplicated, throttled error notifications for live previews.

A description is re-rendered on every change, so the same failure can
repeat many times a second.  The notifier lets a message through only if
it differs from the last one shown and the throttle interval has passed;
a successful render clears both.
"""

from __future__ import annotations

import time
from typing import Callable


class ErrorNotifier:
    """Decides whether an error message should be shown to the user."""

    def __init__(
        self,
        interval_secs: float = 50.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval_secs = interval_secs
        self._clock = clock
        self._last_message = ""
        self._last_shown: float | None = None

    def should_notify(self, message: str) -> bool:
        """Record a failure; return True if *message* should be shown."""
        if message == self._last_message:
            return False
        now = self._clock()
        if self._last_shown is not None and now - self._last_shown < self.interval_secs:
            return False
        self._last_shown = now
        self._last_message = message
        return True

    def reset(self) -> None:
        """Forget the last failure after a successful render."""
        self._last_message = ""
        self._last_shown = None
