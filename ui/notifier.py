"""Notifier that surfaces engine and sync messages in the tk UI."""

import logging
from tkinter import messagebox
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class MessageBoxNotifier:
    """Warnings and errors pop a message box; info goes to a status callback."""

    def __init__(self, parent, on_info: Optional[Callable[[str], None]] = None):
        self.parent = parent
        self.on_info = on_info

    def info(self, message: str):
        logger.info(message)
        if self.on_info:
            self.on_info(message)
        else:
            messagebox.showinfo("Income Tool", message, parent=self.parent)

    def warning(self, message: str):
        logger.warning(message)
        messagebox.showwarning("Income Tool", message, parent=self.parent)

    def error(self, message: str):
        logger.error(message)
        messagebox.showerror("Income Tool", message, parent=self.parent)
