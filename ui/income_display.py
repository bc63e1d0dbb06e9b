"""Income display panel with live figures and work controls."""

import tkinter as tk
from tkinter import ttk, messagebox
from typing import Optional, Tuple

from income_engine import IncomeEngine, income_rates
from scheduler import AdaptiveScheduler
from ui.dialogs import HistoryDialog, SettingsDialog
from utils import format_currency, format_status_line, format_time


class IncomeDisplayPanel(ttk.Frame):
    """Panel showing today's income and the start/end controls."""

    # Dark theme colors (sv_ttk compatible)
    BG = '#1c1c1c'
    BG_CARD = '#2a2a2a'
    FG = '#fafafa'
    FG_DIM = '#9e9e9e'
    ACCENT = '#0078d4'
    SUCCESS = '#4caf50'

    def __init__(self, parent, engine: IncomeEngine, commands, config_store, timer_loop,
                 activity=None):
        super().__init__(parent)
        self.engine = engine
        self.commands = commands
        self.config_store = config_store
        self._last_values: Optional[Tuple[float, int, bool]] = None

        self._create_widgets()

        self.scheduler = AdaptiveScheduler(timer_loop, self._update_display, activity,
                                           name='income-display')
        self._apply_config()
        self._unsubscribe_config = config_store.on_change(lambda config: self._apply_config())
        self._unsubscribe_state = engine.state_changed.connect(
            lambda state: self._update_display(force=True))

        self.scheduler.start()
        self._update_display(force=True)

    def _create_widgets(self):
        display = tk.Frame(self, bg=self.BG)
        display.pack(fill='both', expand=True)

        self.income_label = tk.Label(
            display,
            text="$0.00",
            font=('Consolas', 40, 'bold'),
            fg=self.ACCENT,
            bg=self.BG
        )
        self.income_label.pack(pady=(30, 8))

        self.time_label = tk.Label(
            display,
            text="0h 00m",
            font=('Segoe UI', 14),
            fg=self.FG,
            bg=self.BG
        )
        self.time_label.pack(pady=4)

        self.status_label = tk.Label(
            display,
            text="",
            font=('Segoe UI', 10),
            fg=self.FG_DIM,
            bg=self.BG
        )
        self.status_label.pack(pady=2)

        # Rates card
        card = tk.Frame(display, bg=self.BG_CARD)
        card.pack(fill='x', padx=12, pady=(12, 8))
        self.detail_label = tk.Label(
            card,
            text="",
            justify='left',
            anchor='w',
            font=('Segoe UI', 9),
            fg=self.FG_DIM,
            bg=self.BG_CARD
        )
        self.detail_label.pack(fill='x', padx=16, pady=10)

        self.message_label = tk.Label(
            display,
            text="",
            font=('Segoe UI', 9),
            fg='#666666',
            bg=self.BG
        )
        self.message_label.pack(pady=(4, 12))

        btn_frame = tk.Frame(self, bg=self.BG)
        btn_frame.pack(fill='x', pady=(0, 16))
        btn_inner = tk.Frame(btn_frame, bg=self.BG)
        btn_inner.pack()

        self.start_btn = ttk.Button(
            btn_inner,
            text="START",
            command=self._on_start_stop,
            width=12,
            style='Accent.TButton'
        )
        self.start_btn.pack(side='left', padx=6)

        self.reset_btn = ttk.Button(btn_inner, text="Reset", command=self._on_reset, width=8)
        self.reset_btn.pack(side='left', padx=6)

        self.sync_btn = ttk.Button(btn_inner, text="Sync", command=self._on_sync, width=8)
        self.sync_btn.pack(side='left', padx=6)

        nav_frame = tk.Frame(self, bg=self.BG)
        nav_frame.pack(fill='x', pady=(0, 12))
        nav_inner = tk.Frame(nav_frame, bg=self.BG)
        nav_inner.pack()

        ttk.Button(nav_inner, text="Settings", command=self._on_settings, width=10).pack(side='left', padx=6)
        ttk.Button(nav_inner, text="History", command=self._on_history, width=10).pack(side='left', padx=6)

    def show_message(self, message: str):
        """Show a transient info message under the figures."""
        self.message_label.config(text=message)

    def _apply_config(self):
        config = self.config_store.get_snapshot()
        self.scheduler.configure(config.update_frequency, config.custom_update_frequency)
        self._update_display(force=True)

    def _on_start_stop(self):
        if self.engine.is_working():
            self.commands.handle({'type': 'endWork'})
        else:
            self.commands.handle({'type': 'startWork'})
        self.scheduler.record_activity()

    def _on_reset(self):
        if messagebox.askyesno("Reset Today", "Discard today's sessions and figures?",
                               parent=self.winfo_toplevel()):
            self.commands.handle({'type': 'resetToday'})

    def _on_sync(self):
        self.commands.handle({'type': 'manualSync'})

    def _on_settings(self):
        dialog = SettingsDialog(self.winfo_toplevel(), self.commands)
        self.wait_window(dialog)
        if dialog.result:
            self.show_message("Settings saved")

    def _on_history(self):
        HistoryDialog(self.winfo_toplevel(), self.commands)

    def _update_display(self, force: bool = False):
        """Refresh the figures if anything changed."""
        working = self.engine.is_working()
        income = self.engine.get_current_income()
        minutes = self.engine.get_today_worked_minutes()

        values = (income, minutes, working)
        if not force and values == self._last_values:
            return
        self._last_values = values

        config = self.config_store.get_snapshot()
        if config.blur_income:
            self.income_label.config(text="***")
        else:
            self.income_label.config(text=format_currency(income, config.precision_level))
        self.time_label.config(text=format_time(minutes))
        self.status_label.config(
            text=format_status_line(income, minutes, working, config.precision_level,
                                    config.blur_income),
            fg=self.SUCCESS if working else self.FG_DIM
        )
        self.start_btn.config(text="END" if working else "START")

        rates = income_rates(config)
        standard = rates['standard_minutes']
        progress = min(100, minutes * 100 // standard) if standard else 0
        self.detail_label.config(text=(
            f"Daily target: {format_currency(rates['daily_target'])}\n"
            f"Per hour: {format_currency(rates['per_hour'])}\n"
            f"Schedule: {config.work_start_time} - {config.work_end_time}  ({progress}% done)"
        ))

    def destroy(self):
        self.scheduler.stop()
        self._unsubscribe_config()
        self._unsubscribe_state()
        super().destroy()
