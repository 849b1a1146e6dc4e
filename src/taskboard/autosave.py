"""Debounced auto-save on a cancellable timer."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_AUTO_SAVE_DELAY = 1.0

TimerFactory = Callable[..., Any]


class AutoSaveScheduler:
    """Run ``callback`` once a quiet period of ``delay`` seconds has passed.

    Every ``schedule()`` call restarts the trailing window, so a burst of
    changes produces a single call. ``timer_factory`` must build an object
    with the ``threading.Timer`` interface (``start``, ``cancel``, ``daemon``).
    """

    def __init__(
        self,
        callback: Callable[[], Any],
        delay: float = DEFAULT_AUTO_SAVE_DELAY,
        *,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self._callback: Callable[[], Any] | None = callback
        self.delay = delay
        self._timer_factory = timer_factory
        self._timer: Any = None
        self._generation = 0
        self._lock = threading.Lock()
        self.enabled = True

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def schedule(self) -> None:
        if not self.enabled or self._callback is None:
            return
        with self._lock:
            self._cancel_locked()
            generation = self._generation
            timer = self._timer_factory(self.delay, self._fire, args=(generation,))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()

    def _cancel_locked(self) -> None:
        # A timer that already fired but lost the race sees a stale generation.
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def flush(self) -> bool:
        """Run a pending save immediately; return whether one was pending."""
        with self._lock:
            if self._timer is None:
                return False
            self._cancel_locked()
        self._run()
        return True

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._timer is None:
                return
            self._timer = None
        self._run()

    def _run(self) -> None:
        callback = self._callback
        if callback is None:
            return
        logger.debug("Auto-save firing")
        try:
            callback()
        except Exception:
            logger.exception("Auto-save failed; the next change will retry")

    def enable(self) -> None:
        self.enabled = True

    def disable(self) -> None:
        self.enabled = False
        self.cancel()

    def set_delay(self, delay: float) -> None:
        self.delay = delay

    def close(self) -> None:
        self.disable()
        self._callback = None
