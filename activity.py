"""Keyboard and mouse activity signals."""

import logging
import time
from typing import Callable

from events import Signal

logger = logging.getLogger(__name__)

# Count at most 10 mouse moves per second
MOVE_THROTTLE_SECONDS = 0.1


class ActivityTracker:
    """Emits an activity signal on keyboard and mouse input.

    Handlers run on pynput listener threads, so they should only record a
    timestamp and leave any real work to the timer loop.
    """

    def __init__(self):
        self.activity = Signal('activity')
        self._last_move_time = 0.0
        self._running = False
        self._mouse_listener = None
        self._keyboard_listener = None

    @property
    def running(self) -> bool:
        return self._running

    def subscribe(self, handler: Callable[[], None]) -> Callable[[], None]:
        return self.activity.connect(handler)

    def start(self):
        """Start listening for input."""
        if self._running:
            return

        self._running = True
        try:
            from pynput import keyboard, mouse

            self._mouse_listener = mouse.Listener(
                on_click=self._on_click,
                on_move=self._on_move,
                on_scroll=self._on_scroll,
            )
            self._keyboard_listener = keyboard.Listener(on_press=self._on_key)
            self._mouse_listener.start()
            self._keyboard_listener.start()
        except Exception as e:
            # No display or no input backend; adaptive mode just sees no activity
            logger.warning("Activity tracking unavailable: %s", e)
            self._running = False

    def stop(self):
        """Stop listening."""
        self._running = False
        for attr in ('_mouse_listener', '_keyboard_listener'):
            listener = getattr(self, attr)
            if listener:
                try:
                    listener.stop()
                except Exception as e:
                    logger.debug("Listener stop failed: %s", e)
                setattr(self, attr, None)

    def notify(self):
        """Report activity from a non-input source, e.g. a button press."""
        self.activity.emit()

    def _on_key(self, key):
        if self._running:
            self.activity.emit()

    def _on_click(self, x, y, button, pressed):
        if self._running and pressed:
            self.activity.emit()

    def _on_scroll(self, x, y, dx, dy):
        if self._running:
            self.activity.emit()

    def _on_move(self, x, y):
        if self._running:
            now = time.monotonic()
            if now - self._last_move_time > MOVE_THROTTLE_SECONDS:
                self._last_move_time = now
                self.activity.emit()
