"""Form parsing for the settings and history dialogs.

Dialog fields arrive as text. These helpers turn them into the request
dicts CommandHandler.handle expects and raise ValueError with a message
fit for the user when a field is bad.
"""

import math
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from config_store import (
    MAX_CUSTOM_FREQUENCY_MS,
    MIN_CUSTOM_FREQUENCY_MS,
    SYNC_PROVIDERS,
    UPDATE_FREQUENCIES,
)
from sync_coordinator import PLAIN_FIELDS, SECRET_NAMES
from utils import is_valid_time, round_cents

# Index is the weekday ordinal, 0 = Sunday
WEEKDAY_NAMES = ('Sun', 'Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat')

SYNC_FORM_FIELDS = (
    ('endpoint', 'Endpoint:'),
    ('username', 'Username:'),
    ('password', 'Password:'),
    ('bucket', 'Bucket:'),
    ('region', 'Region:'),
    ('accessKey', 'Access Key:'),
    ('secretKey', 'Secret Key:'),
)
SECRET_FORM_FIELDS = ('password', 'accessKey', 'secretKey')

INCOME_FLAGS = ('auto_start_work', 'overtime_enabled', 'deduct_for_early_leave', 'blur_income')

# Label -> number of days back, None for everything
HISTORY_PERIODS = (('7 days', 7), ('30 days', 30), ('All', None))


def _number(text: str, message: str, integer: bool = False):
    try:
        value = int(str(text).strip()) if integer else float(str(text).strip())
    except ValueError:
        raise ValueError(message)
    if not math.isfinite(value):
        raise ValueError(message)
    return value


def parse_income_settings(form: Dict[str, Any]) -> Dict[str, Any]:
    """Build an updateConfig payload from the income section of the form."""
    update = {
        'monthly_income': _number(form.get('monthly_income', ''),
                                  "Monthly income must be a number."),
        'precision_level': _number(form.get('precision_level', ''),
                                   "Decimal places must be a whole number.", integer=True),
        'overtime_rate': _number(form.get('overtime_rate', ''),
                                 "Overtime rate must be a number."),
    }
    if update['monthly_income'] < 0:
        raise ValueError("Monthly income cannot be negative.")
    if not 0 <= update['precision_level'] <= 10:
        raise ValueError("Decimal places must be between 0 and 10.")
    if update['overtime_rate'] < 1.0:
        raise ValueError("Overtime rate must be at least 1.0.")

    for key, label in (('work_start_time', "Start time"), ('work_end_time', "End time")):
        value = str(form.get(key, '')).strip()
        if not is_valid_time(value):
            raise ValueError(f"{label} must look like 09:00.")
        update[key] = value

    work_days = sorted(set(form.get('work_days') or ()))
    if not work_days:
        raise ValueError("Pick at least one work day.")
    update['work_days'] = work_days

    frequency = form.get('update_frequency', 'auto')
    if frequency not in UPDATE_FREQUENCIES:
        raise ValueError(f"Unknown update frequency: {frequency}")
    update['update_frequency'] = frequency
    if frequency == 'custom':
        interval = _number(form.get('custom_update_frequency', ''),
                           "Custom interval must be a whole number of milliseconds.", integer=True)
        if not MIN_CUSTOM_FREQUENCY_MS <= interval <= MAX_CUSTOM_FREQUENCY_MS:
            raise ValueError(f"Custom interval must be between {MIN_CUSTOM_FREQUENCY_MS} "
                             f"and {MAX_CUSTOM_FREQUENCY_MS} ms.")
        update['custom_update_frequency'] = interval

    for flag in INCOME_FLAGS:
        update[flag] = bool(form.get(flag))

    return {'type': 'updateConfig', 'config': update}


def sync_settings_request(provider: str, fields: Dict[str, str], auto_sync: bool) -> Dict[str, Any]:
    """Build a saveSyncConfig request. Blank secrets keep the stored ones."""
    if provider not in SYNC_PROVIDERS:
        raise ValueError(f"Unknown sync provider: {provider}")

    names = tuple(PLAIN_FIELDS[provider]) + tuple(SECRET_NAMES.get(provider, {}))
    config = {name: (fields.get(name) or '').strip() for name in names}
    if provider != 'local' and not config.get('endpoint'):
        raise ValueError("Endpoint is required.")
    config['autoSync'] = bool(auto_sync)
    return {'type': 'saveSyncConfig', 'provider': provider, 'config': config}


def connection_test_request(provider: str, fields: Dict[str, str],
                            callback: Callable[[bool], None]) -> Dict[str, Any]:
    """Test the typed settings when secrets were entered, the saved ones otherwise."""
    message = {'type': 'testConnection', 'callback': callback}
    typed_secret = any((fields.get(name) or '').strip() for name in SECRET_NAMES.get(provider, {}))
    if provider == 'local' or typed_secret:
        draft = {name: (value or '').strip() for name, value in fields.items()}
        draft['provider'] = provider
        message['config'] = draft
    return message


def history_request(days: Optional[int], today: date) -> Dict[str, Any]:
    """getHistory request covering the last days (today included), or everything."""
    if days is None:
        return {'type': 'getHistory', 'start': '', 'end': '9999-12-31'}
    start = today - timedelta(days=days - 1)
    return {'type': 'getHistory', 'start': start.isoformat(), 'end': today.isoformat()}


def summarize_history(records: Iterable[Dict[str, Any]]) -> Tuple[int, int, float]:
    """(days, worked minutes, income) over history records."""
    rows = list(records)
    minutes = sum(r.get('totalWorkedMinutes') or 0 for r in rows)
    income = round_cents(sum(r.get('totalIncome') or 0 for r in rows))
    return len(rows), minutes, income
