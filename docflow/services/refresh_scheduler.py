"""
DocFlow - Refresh Scheduling

Two small pieces that keep a document view current after something changed:

- NotificationSignal: fire-and-forget "notifications changed" broadcast, emitted
  after a successful transition so other views (badges, inbox) refetch.
- RefreshScheduler: background polling loop for one view. Polls on the idle
  interval and switches to the burst interval for a short window after boost(),
  so the next holder's task shows up quickly, then decays back.
  A scheduler can listen() to a signal so transitions made elsewhere boost it too.

Neither piece ever raises into its caller: listener and refresh failures are
logged and the loop keeps going.
"""

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional

from . import workflow_config

logger = logging.getLogger(__name__)


# =============================================================================
# NOTIFICATION SIGNAL
# =============================================================================

class NotificationSignal:
    """In-process broadcast. Listeners may be plain or async callables."""

    def __init__(self, name: str = "notifications:refresh"):
        self.name = name
        self._listeners: List[Callable[..., Any]] = []

    def subscribe(self, listener: Callable[..., Any]) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def emit(self, **payload) -> int:
        """
        Call every listener with the payload.
        Returns how many listeners completed without error.
        """
        delivered = 0
        for listener in list(self._listeners):
            try:
                result = listener(**payload)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                logger.warning("Signal %s listener %r failed: %s", self.name, listener, str(e))
        logger.debug("Signal %s delivered to %d/%d listeners", self.name, delivered, len(self._listeners))
        return delivered


# Process-wide signal used by the transition executor
notifications_refresh = NotificationSignal()


# =============================================================================
# REFRESH SCHEDULER
# =============================================================================

class RefreshScheduler:
    """
    Adaptive polling loop.

    Usage:
        scheduler = RefreshScheduler(session.refresh)
        scheduler.start()
        ...
        scheduler.boost()     # after a transition
        scheduler.listen(notifications_refresh)   # and on every refresh signal
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        refresh: Callable[[], Awaitable[Any]],
        idle_interval: float = None,
        burst_interval: float = None,
        burst_window: float = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self._refresh = refresh
        self.idle_interval = idle_interval or workflow_config.WORKFLOW_IDLE_POLL_SECONDS
        self.burst_interval = burst_interval or workflow_config.WORKFLOW_BURST_POLL_SECONDS
        self.burst_window = burst_window or workflow_config.WORKFLOW_BURST_WINDOW_SECONDS
        self._clock = clock
        self._burst_until: Optional[float] = None
        self._task: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None
        self._unsubscribes: List[Callable[[], None]] = []
        self.refresh_count = 0
        self.error_count = 0

    def current_interval(self, now: float = None) -> float:
        return self.burst_interval if self.in_burst(now) else self.idle_interval

    def in_burst(self, now: float = None) -> bool:
        now = self._clock() if now is None else now
        return self._burst_until is not None and now < self._burst_until

    def boost(self, now: float = None) -> None:
        """Switch to the burst interval for the burst window, starting now."""
        now = self._clock() if now is None else now
        self._burst_until = now + self.burst_window
        if self._wake is not None:
            self._wake.set()
        logger.debug("Refresh burst until %.1f (every %.1fs)", self._burst_until, self.burst_interval)

    def listen(self, signal: NotificationSignal) -> Callable[[], None]:
        """Boost whenever the signal fires. Returns the unsubscribe function; stop() also unsubscribes."""
        def on_signal(**payload):
            self.boost()

        unsubscribe = signal.subscribe(on_signal)
        self._unsubscribes.append(unsubscribe)
        return unsubscribe

    async def tick(self) -> bool:
        """Run one refresh. Returns False when it failed."""
        try:
            await self._refresh()
            self.refresh_count += 1
            return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.error_count += 1
            logger.error("[RefreshScheduler] Refresh failed: %s", str(e))
            return False

    async def _run(self):
        logger.info("[RefreshScheduler] Polling started (idle %.1fs, burst %.1fs)",
                    self.idle_interval, self.burst_interval)
        while True:
            try:
                await self.tick()
                self._wake.clear()
                try:
                    await asyncio.wait_for(self._wake.wait(), timeout=self.current_interval())
                except asyncio.TimeoutError:
                    pass
            except asyncio.CancelledError:
                logger.info("[RefreshScheduler] Polling cancelled")
                break

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        return self._task

    async def stop(self):
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            logger.info("[RefreshScheduler] Polling stopped")
        self._task = None
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes = []
