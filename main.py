"""Main entry point for Income Tool application."""

import logging
import logging.handlers
import os
import sys
import tkinter as tk
from tkinter import ttk

import sv_ttk

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import db
from activity import ActivityTracker
from commands import CommandHandler
from config_store import ConfigStore
from income_engine import IncomeEngine
from secret_store import SecretStore
from sync_coordinator import SyncCoordinator
from ui.income_display import IncomeDisplayPanel
from ui.notifier import MessageBoxNotifier
from ui.tk_loop import TkTimerLoop

logger = logging.getLogger(__name__)

LOG_FILE_NAME = "incometool.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level=logging.INFO):
    """Log to a rotating file in the data directory and to stderr."""
    root = logging.getLogger()
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = logging.handlers.RotatingFileHandler(
        db.get_data_dir() / LOG_FILE_NAME, maxBytes=1_000_000, backupCount=3, encoding='utf-8')
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)


class IncomeApp:
    """Main application class."""

    def __init__(self):
        self.root = tk.Tk()
        self.root.title("Income Tool")
        self.root.geometry("360x520")
        self.root.minsize(340, 480)

        self._setup_style()

        self.loop = TkTimerLoop(self.root)
        self.tracker = ActivityTracker()
        self.config_store = ConfigStore()
        self.notifier = MessageBoxNotifier(self.root, on_info=self._show_info)

        self.engine = IncomeEngine(self.config_store, self.loop, activity=self.tracker,
                                   notifier=self.notifier)
        self.sync = SyncCoordinator(self.config_store, SecretStore(), self.loop,
                                    notifier=self.notifier)
        self.commands = CommandHandler(self.engine, self.sync, self.config_store)

        self.panel = IncomeDisplayPanel(self.root, self.engine, self.commands,
                                        self.config_store, self.loop, activity=self.tracker)
        self.panel.pack(fill='both', expand=True)

        # Handle window close
        self.root.protocol("WM_DELETE_WINDOW", self._on_close)

    def _setup_style(self):
        """Set up ttk style with dark mode using sv_ttk."""
        sv_ttk.set_theme("dark")
        self.root.configure(bg='#1c1c1c')

        style = ttk.Style()
        style.configure('Accent.TButton', font=('Segoe UI', 10, 'bold'))

    def _show_info(self, message: str):
        if hasattr(self, 'panel'):
            self.panel.show_message(message)

    def _on_close(self):
        """Persist the live day and shut the services down."""
        logger.info("Shutting down")
        self.panel.destroy()
        self.sync.dispose()
        self.engine.dispose()
        self.config_store.dispose()
        self.tracker.stop()
        self.root.quit()
        self.root.destroy()

    def run(self):
        """Run the application."""
        self.tracker.start()
        self.engine.start()
        self.sync.start()
        self.root.mainloop()


def main():
    """Main entry point."""
    setup_logging()

    # Initialize database
    db.init_db()

    # Backup database on startup (keeps last 10)
    db.backup_database()

    app = IncomeApp()
    app.run()


if __name__ == '__main__':
    main()
