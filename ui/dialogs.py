"""Dialog windows for settings and income history."""

import tkinter as tk
from tkinter import ttk, messagebox
from datetime import date, datetime
from typing import Dict

from config_store import SYNC_PROVIDERS, UPDATE_FREQUENCIES
from settings_form import (
    HISTORY_PERIODS,
    INCOME_FLAGS,
    SECRET_FORM_FIELDS,
    SYNC_FORM_FIELDS,
    WEEKDAY_NAMES,
    connection_test_request,
    history_request,
    parse_income_settings,
    summarize_history,
    sync_settings_request,
)
from utils import format_currency, format_time


class SettingsDialog(tk.Toplevel):
    """Dialog for income and cloud sync settings."""

    FLAG_LABELS = {
        'auto_start_work': "Start work automatically inside the schedule",
        'overtime_enabled': "Pay overtime after the end time",
        'deduct_for_early_leave': "Deduct pay when leaving early",
        'blur_income': "Hide the income figure",
    }

    def __init__(self, parent, commands):
        super().__init__(parent)
        self.title("Settings")
        self.commands = commands
        self.result = None

        self.transient(parent)
        self.grab_set()

        config = commands.handle({'type': 'getSnapshot'})['data']['config']
        self._create_widgets(config)
        self.geometry('+%d+%d' % (parent.winfo_rootx() + 50, parent.winfo_rooty() + 50))

    def _create_widgets(self, config: Dict):
        frame = ttk.Frame(self, padding=15)
        frame.pack(fill='both', expand=True)

        ttk.Label(frame, text="Income", font=('Segoe UI', 10, 'bold')).grid(row=0, column=0, columnspan=2, sticky='w', pady=(0, 10))

        fields = [
            ('Monthly Income:', 'monthly_income'),
            ('Start Time (HH:MM):', 'work_start_time'),
            ('End Time (HH:MM):', 'work_end_time'),
            ('Overtime Rate:', 'overtime_rate'),
            ('Decimal Places:', 'precision_level'),
        ]

        self.income_vars = {}
        for i, (label, key) in enumerate(fields):
            ttk.Label(frame, text=label).grid(row=i+1, column=0, sticky='w', pady=2)
            var = tk.StringVar(value=str(config.get(key, '')))
            self.income_vars[key] = var
            ttk.Entry(frame, textvariable=var, width=12).grid(row=i+1, column=1, sticky='w', pady=2)

        ttk.Label(frame, text="Work Days:").grid(row=6, column=0, sticky='w', pady=2)
        days_frame = ttk.Frame(frame)
        days_frame.grid(row=6, column=1, sticky='w', pady=2)
        self.day_vars = []
        for ordinal, name in enumerate(WEEKDAY_NAMES):
            var = tk.BooleanVar(value=ordinal in config.get('work_days', []))
            self.day_vars.append(var)
            ttk.Checkbutton(days_frame, text=name, variable=var).pack(side='left')

        ttk.Label(frame, text="Update Frequency:").grid(row=7, column=0, sticky='w', pady=2)
        freq_frame = ttk.Frame(frame)
        freq_frame.grid(row=7, column=1, sticky='w', pady=2)
        self.frequency_var = tk.StringVar(value=config.get('update_frequency', 'auto'))
        ttk.Combobox(freq_frame, textvariable=self.frequency_var, values=UPDATE_FREQUENCIES,
                     state='readonly', width=8).pack(side='left')
        self.custom_var = tk.StringVar(value=str(config.get('custom_update_frequency', 3000)))
        ttk.Entry(freq_frame, textvariable=self.custom_var, width=7).pack(side='left', padx=(6, 2))
        ttk.Label(freq_frame, text="ms (custom)").pack(side='left')

        self.flag_vars = {}
        for i, flag in enumerate(INCOME_FLAGS):
            var = tk.BooleanVar(value=bool(config.get(flag)))
            self.flag_vars[flag] = var
            ttk.Checkbutton(frame, text=self.FLAG_LABELS[flag], variable=var).grid(row=8+i, column=0, columnspan=2, sticky='w', pady=1)

        # Cloud sync section
        ttk.Label(frame, text="Cloud Sync", font=('Segoe UI', 10, 'bold')).grid(row=12, column=0, columnspan=2, sticky='w', pady=(15, 5))

        ttk.Label(frame, text="Provider:").grid(row=13, column=0, sticky='w', pady=2)
        self.provider_var = tk.StringVar(value=config.get('sync_provider', 'local'))
        ttk.Combobox(frame, textvariable=self.provider_var, values=SYNC_PROVIDERS,
                     state='readonly', width=12).grid(row=13, column=1, sticky='w', pady=2)

        saved = config.get('sync_config') or {}
        self.sync_vars = {}
        for i, (key, label) in enumerate(SYNC_FORM_FIELDS):
            ttk.Label(frame, text=label).grid(row=14+i, column=0, sticky='w', pady=2)
            var = tk.StringVar(value=saved.get(key, ''))
            self.sync_vars[key] = var
            show = '*' if key in SECRET_FORM_FIELDS else ''
            ttk.Entry(frame, textvariable=var, width=35, show=show).grid(row=14+i, column=1, sticky='w', pady=2)

        ttk.Label(frame, text="Leave secrets blank to keep the stored ones.",
                  foreground='gray').grid(row=21, column=0, columnspan=2, sticky='w', pady=(2, 0))

        self.auto_sync_var = tk.BooleanVar(value=bool(config.get('auto_sync')))
        ttk.Checkbutton(frame, text="Sync automatically when settings change",
                        variable=self.auto_sync_var).grid(row=22, column=0, columnspan=2, sticky='w', pady=2)

        self.connection_label = ttk.Label(frame, text="", font=('Segoe UI', 9))
        self.connection_label.grid(row=23, column=0, columnspan=2, sticky='w', pady=(5, 0))

        # Buttons
        btn_frame = ttk.Frame(frame)
        btn_frame.grid(row=24, column=0, columnspan=2, pady=(15, 0))

        ttk.Button(btn_frame, text="Test Connection", command=self._test_connection).pack(side='left', padx=5)
        ttk.Button(btn_frame, text="Save", command=self._save, style='Accent.TButton').pack(side='left', padx=5)
        ttk.Button(btn_frame, text="Cancel", command=self.destroy).pack(side='left', padx=5)

        self.bind('<Escape>', lambda e: self.destroy())

    def _income_form(self) -> Dict:
        form = {key: var.get() for key, var in self.income_vars.items()}
        form['work_days'] = [i for i, var in enumerate(self.day_vars) if var.get()]
        form['update_frequency'] = self.frequency_var.get()
        form['custom_update_frequency'] = self.custom_var.get()
        form.update({flag: var.get() for flag, var in self.flag_vars.items()})
        return form

    def _sync_fields(self) -> Dict[str, str]:
        return {key: var.get() for key, var in self.sync_vars.items()}

    def _test_connection(self):
        """Check the provider in the background; the label shows the outcome."""
        message = connection_test_request(self.provider_var.get(), self._sync_fields(),
                                          self._show_connection_result)
        self.connection_label.config(text="Testing connection...")
        response = self.commands.handle(message)
        if not response['success'] and response.get('error'):
            self.connection_label.config(text=response['error'])

    def _show_connection_result(self, ok: bool):
        if not self.winfo_exists():
            return
        self.connection_label.config(text="Connection OK" if ok else "Connection failed")

    def _save(self):
        """Save settings."""
        try:
            income_request = parse_income_settings(self._income_form())
            sync_request = sync_settings_request(self.provider_var.get(), self._sync_fields(),
                                                 self.auto_sync_var.get())
        except ValueError as e:
            messagebox.showerror("Error", str(e), parent=self)
            return

        for request in (income_request, sync_request):
            response = self.commands.handle(request)
            if not response['success']:
                messagebox.showerror("Error", response.get('error') or "Could not save settings.",
                                     parent=self)
                return

        self.result = True
        self.destroy()


class HistoryDialog(tk.Toplevel):
    """Dialog listing archived days with their income."""

    def __init__(self, parent, commands):
        super().__init__(parent)
        self.title("Income History")
        self.commands = commands

        self.transient(parent)
        self.grab_set()

        self._create_widgets()
        self.geometry('520x400+%d+%d' % (parent.winfo_rootx() + 20, parent.winfo_rooty() + 20))
        self._load_history()

    def _create_widgets(self):
        frame = ttk.Frame(self, padding=10)
        frame.pack(fill='both', expand=True)

        # Period filter
        filter_frame = ttk.Frame(frame)
        filter_frame.pack(fill='x', pady=(0, 10))

        self.period_var = tk.StringVar(value=HISTORY_PERIODS[1][0])
        for label, _ in HISTORY_PERIODS:
            ttk.Radiobutton(filter_frame, text=label, variable=self.period_var, value=label,
                            command=self._load_history).pack(side='left', padx=5)

        columns = ('worked', 'income', 'sessions', 'workday')
        self.tree = ttk.Treeview(frame, columns=columns, show='tree headings', selectmode='browse')

        self.tree.heading('#0', text='Date')
        self.tree.heading('worked', text='Worked')
        self.tree.heading('income', text='Income')
        self.tree.heading('sessions', text='Sessions')
        self.tree.heading('workday', text='Workday')

        self.tree.column('#0', width=160)
        self.tree.column('worked', width=80, anchor='e')
        self.tree.column('income', width=100, anchor='e')
        self.tree.column('sessions', width=70, anchor='e')
        self.tree.column('workday', width=70, anchor='center')

        scrollbar = ttk.Scrollbar(frame, orient='vertical', command=self.tree.yview)
        self.tree.configure(yscrollcommand=scrollbar.set)

        self.tree.pack(side='left', fill='both', expand=True)
        scrollbar.pack(side='right', fill='y')

        # Buttons
        btn_frame = ttk.Frame(self)
        btn_frame.pack(fill='x', padx=10, pady=5)

        ttk.Button(btn_frame, text="Close", command=self.destroy).pack(side='right', padx=2)

        # Totals
        totals_frame = ttk.Frame(self)
        totals_frame.pack(fill='x', padx=10, pady=5)

        self.totals_label = ttk.Label(totals_frame, text="", font=('Segoe UI', 9))
        self.totals_label.pack(side='left')

        self.bind('<Escape>', lambda e: self.destroy())

    def _load_history(self):
        """Load archived days into the tree, newest first."""
        for item in self.tree.get_children():
            self.tree.delete(item)

        days = dict(HISTORY_PERIODS)[self.period_var.get()]
        response = self.commands.handle(history_request(days, date.today()))
        if not response['success']:
            messagebox.showerror("Error", response.get('error') or "Could not load history.",
                                 parent=self)
            return

        records = response['data']
        for record in sorted(records, key=lambda r: r['date'], reverse=True):
            day_name = datetime.strptime(record['date'], '%Y-%m-%d').strftime('%A')
            self.tree.insert('', 'end', iid=record['date'],
                             text=f"{day_name}, {record['date']}",
                             values=(format_time(record.get('totalWorkedMinutes')),
                                     format_currency(record.get('totalIncome') or 0),
                                     len(record.get('sessions') or []),
                                     "Yes" if record.get('isWorkday') else "No"))

        count, minutes, income = summarize_history(records)
        self.totals_label.config(
            text=f"Total: {format_currency(income)} | Worked: {format_time(minutes)} | Days: {count}"
        )
