"""
Trailing-edge debounce timer on the asyncio event loop.

One shared handle per timer: every schedule() replaces the pending
callback and restarts the delay, so a burst of calls produces a single
invocation carrying the latest callback.

Example Usage:
    timer = DebouncedTimer(delay_seconds=2.0)
    timer.schedule(save_snapshot)   # restarts the 2s window
    timer.schedule(save_snapshot)   # only this one fires
    timer.flush()                   # fire now instead of waiting
"""

import asyncio
from typing import Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


class DebouncedTimer:
    """Cancellable single-slot timer (schedule / cancel / flush)."""

    def __init__(self, delay_seconds: float):
        """
        Initialize DebouncedTimer.

        Args:
            delay_seconds: Quiet period before the pending callback fires

        Raises:
            ValueError: If delay_seconds <= 0
        """
        if delay_seconds <= 0:
            raise ValueError("delay_seconds must be greater than 0")

        self.delay_seconds = delay_seconds
        self._handle: Optional[asyncio.TimerHandle] = None
        self._callback: Optional[Callable[[], None]] = None
        self.fired_count = 0

    @property
    def pending(self) -> bool:
        """True when a callback is waiting to fire."""
        return self._callback is not None

    def schedule(self, callback: Callable[[], None]) -> None:
        """
        Replace the pending callback and restart the delay.

        Outside a running event loop the callback stays pending until
        flush() is called.
        """
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

        self._callback = callback

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, callback pending until flush")
            return

        self._handle = loop.call_later(self.delay_seconds, self._fire)

    def cancel(self) -> bool:
        """
        Drop the pending callback without running it.

        Returns:
            True if a callback was pending
        """
        was_pending = self.pending
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._callback = None
        return was_pending

    def flush(self) -> bool:
        """
        Run the pending callback immediately.

        Returns:
            True if a callback was pending and ran
        """
        if not self.pending:
            return False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._fire()
        return True

    def _fire(self) -> None:
        callback = self._callback
        self._handle = None
        self._callback = None
        if callback is None:
            return

        self.fired_count += 1
        try:
            callback()
        except Exception as e:
            logger.error("Debounced callback failed", error=str(e), exc_info=True)
