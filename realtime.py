"""
Coalescing of realtime change notifications.

A burst of notifications for one table collapses into a single call once the
table has been quiet for `window` seconds.
"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class Debouncer:
    def __init__(self, fn: Callable[[], None], window: float = 0.5, name: str = ""):
        self.fn = fn
        self.window = window
        self.name = name or getattr(fn, "__name__", "debounced")
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def __call__(self) -> None:
        if self.window <= 0:
            self._fire()
            return
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.window, self._fire)
            self._timer.daemon = True
            self._timer.start()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        logger.debug("Running debounced %s", self.name)
        try:
            self.fn()
        except Exception:
            # runs on a timer thread, nothing upstream to report to
            logger.exception("Debounced %s failed", self.name)
