"""Timer loop on top of the tk event loop."""

import time
import tkinter as tk
from typing import Any, Callable


class TkTimerLoop:
    """Schedules callbacks with widget.after on the tk main thread.

    Sync workers hand their results back through call_later(0, ...).
    """

    def __init__(self, widget: tk.Misc):
        self.widget = widget

    def call_later(self, delay: float, callback: Callable[[], Any]):
        return self.widget.after(max(0, int(delay * 1000)), callback)

    def cancel(self, handle):
        try:
            self.widget.after_cancel(handle)
        except tk.TclError:
            pass  # widget already destroyed

    def time(self) -> float:
        return time.monotonic()
