"""Adaptive polling shared by the income engine and the UI."""

import logging
from typing import Callable, Optional, Tuple

logger = logging.getLogger(__name__)

# Polling intervals (milliseconds)
UPDATE_FREQUENCY_MS = {
    'fast': 1000,
    'normal': 3000,
    'slow': 5000,
}
AUTO_ACTIVE_MS = 1000
AUTO_IDLE_MS = 5000
DEFAULT_CUSTOM_MS = 3000
MIN_INTERVAL_MS = 100
MAX_INTERVAL_MS = 60000

# No input for this long counts as idle
IDLE_TIMEOUT_SECONDS = 30


def resolve_interval(update_frequency: str, custom_ms: Optional[int] = None) -> Tuple[bool, int]:
    """Map an update-frequency setting to (adaptive, interval_ms)."""
    if update_frequency in UPDATE_FREQUENCY_MS:
        return False, UPDATE_FREQUENCY_MS[update_frequency]
    if update_frequency == 'custom':
        interval = custom_ms if custom_ms else DEFAULT_CUSTOM_MS
        return False, int(min(MAX_INTERVAL_MS, max(MIN_INTERVAL_MS, interval)))
    # 'auto' and anything unrecognised
    return True, AUTO_ACTIVE_MS


class AdaptiveScheduler:
    """Repeating timer whose interval follows the config or recent activity.

    In adaptive mode the interval is AUTO_ACTIVE_MS while there was input in
    the last IDLE_TIMEOUT_SECONDS and AUTO_IDLE_MS otherwise. The timer is
    re-armed after every tick, so a mode change takes effect on the next one.
    """

    def __init__(self, timer_loop, on_tick: Callable[[], None], activity=None,
                 name: str = 'scheduler'):
        self.loop = timer_loop
        self.on_tick = on_tick
        self.activity = activity
        self.name = name

        self.adaptive = True
        self.interval_ms = AUTO_ACTIVE_MS
        self.last_activity = timer_loop.time()

        self._running = False
        self._job = None
        self._unsubscribe_activity: Optional[Callable[[], None]] = None

    @property
    def running(self) -> bool:
        return self._running

    def configure(self, update_frequency: str, custom_ms: Optional[int] = None):
        """Apply an update-frequency setting and rebuild the timer if running."""
        old = (self.adaptive, self.interval_ms)
        self.adaptive, self.interval_ms = resolve_interval(update_frequency, custom_ms)

        if old != (self.adaptive, self.interval_ms):
            logger.info("%s: update frequency %s -> %s", self.name,
                        self._describe(*old), self._describe(self.adaptive, self.interval_ms))

        if self.adaptive:
            self.last_activity = self.loop.time()
            if self._running:
                self._subscribe_activity()
        else:
            self._unsubscribe()

        if self._running:
            self._rebuild_timer()

    def start(self):
        if self._running:
            return
        self._running = True
        if self.adaptive:
            self._subscribe_activity()
        self._rebuild_timer()

    def stop(self):
        self._running = False
        self._cancel_job()
        self._unsubscribe()

    def record_activity(self):
        self.last_activity = self.loop.time()

    def is_idle(self) -> bool:
        return self.loop.time() - self.last_activity >= IDLE_TIMEOUT_SECONDS

    def target_interval(self) -> int:
        if not self.adaptive:
            return self.interval_ms
        return AUTO_IDLE_MS if self.is_idle() else AUTO_ACTIVE_MS

    def _on_timer(self):
        self._job = None
        if not self._running:
            return

        if self.adaptive:
            target = self.target_interval()
            if target != self.interval_ms:
                logger.debug("%s: %s, interval %dms -> %dms", self.name,
                             'idle' if target == AUTO_IDLE_MS else 'active',
                             self.interval_ms, target)
                self.interval_ms = target

        try:
            self.on_tick()
        except Exception:
            logger.exception("%s: tick failed", self.name)

        self._rebuild_timer()

    def _rebuild_timer(self):
        self._cancel_job()
        if self._running:
            self._job = self.loop.call_later(self.interval_ms / 1000, self._on_timer)

    def _cancel_job(self):
        if self._job is not None:
            self.loop.cancel(self._job)
            self._job = None

    def _subscribe_activity(self):
        if self.activity is not None and self._unsubscribe_activity is None:
            self._unsubscribe_activity = self.activity.subscribe(self.record_activity)

    def _unsubscribe(self):
        if self._unsubscribe_activity is not None:
            self._unsubscribe_activity()
            self._unsubscribe_activity = None

    @staticmethod
    def _describe(adaptive: bool, interval_ms: int) -> str:
        return 'adaptive' if adaptive else f"{interval_ms}ms"
