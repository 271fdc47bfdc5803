"""Cooperative cancellation for long-running searches."""

import threading
import time
from typing import Optional

from safety_engine.core.exceptions import Cancelled


class CancellationToken:
    """Caller-owned flag plus optional monotonic deadline.

    The planner polls ``raise_if_cancelled`` before every edge it relaxes, so
    a cancelled search stops within one expansion and never returns a partial
    route.
    """

    def __init__(self, timeout_s: Optional[float] = None):
        self._event = threading.Event()
        self.deadline: Optional[float] = (
            time.monotonic() + timeout_s if timeout_s is not None else None
        )

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled("Search cancelled by caller")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise Cancelled("Search deadline exceeded")
