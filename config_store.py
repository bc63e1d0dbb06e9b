"""Configuration store: defaults, validation and change notification."""

import logging
from dataclasses import fields
from typing import Any, Callable, Dict, Optional

import db
from events import Signal
from models import Config
from utils import is_valid_time, safe_parse_number

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = Config()

UPDATE_FREQUENCIES = ('auto', 'fast', 'normal', 'slow', 'custom')
SYNC_PROVIDERS = ('local', 'webdav', 's3', 'aliyun-oss')

# Only these sync fields may live in plain configuration; the rest go to the keyring
NON_SENSITIVE_SYNC_FIELDS = ('endpoint', 'username', 'bucket', 'region')

CONFIG_KEYS = tuple(f.name for f in fields(Config))

MIN_CUSTOM_FREQUENCY_MS = 100
MAX_CUSTOM_FREQUENCY_MS = 60000


def validate_config(raw: Dict[str, Any]) -> Config:
    """Build a Config from stored values, repairing anything malformed."""
    defaults = Config()
    cfg = Config(**{k: raw[k] for k in CONFIG_KEYS if k in raw})

    # Numbers may arrive as text from the settings form
    cfg.monthly_income = safe_parse_number(cfg.monthly_income, default=None)
    if cfg.monthly_income is None or cfg.monthly_income < 0:
        cfg.monthly_income = defaults.monthly_income

    if isinstance(cfg.work_days, (list, tuple)):
        days = {d for d in cfg.work_days
                if isinstance(d, int) and not isinstance(d, bool) and 0 <= d <= 6}
        cfg.work_days = sorted(days) or list(defaults.work_days)
    else:
        cfg.work_days = list(defaults.work_days)

    if not is_valid_time(cfg.work_start_time):
        cfg.work_start_time = defaults.work_start_time
    if not is_valid_time(cfg.work_end_time):
        cfg.work_end_time = defaults.work_end_time

    cfg.precision_level = safe_parse_number(cfg.precision_level, default=None, integer=True)
    if cfg.precision_level is None or not 0 <= cfg.precision_level <= 10:
        cfg.precision_level = defaults.precision_level

    cfg.overtime_rate = safe_parse_number(cfg.overtime_rate, default=None)
    if cfg.overtime_rate is None or cfg.overtime_rate < 1.0:
        cfg.overtime_rate = defaults.overtime_rate

    if cfg.update_frequency not in UPDATE_FREQUENCIES:
        cfg.update_frequency = 'auto'

    cfg.custom_update_frequency = safe_parse_number(cfg.custom_update_frequency, default=None,
                                                    integer=True)
    if (cfg.custom_update_frequency is None
            or not MIN_CUSTOM_FREQUENCY_MS <= cfg.custom_update_frequency <= MAX_CUSTOM_FREQUENCY_MS):
        cfg.custom_update_frequency = defaults.custom_update_frequency

    if cfg.sync_provider not in SYNC_PROVIDERS:
        cfg.sync_provider = 'local'

    if isinstance(cfg.sync_config, dict):
        cfg.sync_config = strip_sensitive(cfg.sync_config)
    else:
        cfg.sync_config = {}

    for flag in ('auto_start_work', 'overtime_enabled', 'deduct_for_early_leave',
                 'auto_sync', 'blur_income'):
        setattr(cfg, flag, bool(getattr(cfg, flag)))

    return cfg


def strip_sensitive(sync_config: Dict[str, Any]) -> Dict[str, str]:
    """Keep only the sync fields that are safe to store in plain settings."""
    return {k: str(sync_config.get(k) or '') for k in NON_SENSITIVE_SYNC_FIELDS
            if sync_config.get(k)}


class ConfigStore:
    """Validated configuration snapshot backed by the settings table."""

    def __init__(self, repo=db):
        self.repo = repo
        self._cache: Optional[Config] = None
        self.changed = Signal('config_changed')

    def get_snapshot(self) -> Config:
        if self._cache is None:
            try:
                stored = self.repo.get_all_settings()
            except Exception as e:
                logger.error("Could not read settings, using defaults: %s", e)
                stored = {}
            self._cache = validate_config(stored)
        # Callers get their own copy
        return Config(**self._cache.to_dict())

    def refresh(self) -> Config:
        self._cache = None
        return self.get_snapshot()

    def update(self, partial: Dict[str, Any]) -> bool:
        """Persist known keys from partial, then notify listeners."""
        updates = {}
        for key, value in partial.items():
            if key not in CONFIG_KEYS:
                logger.warning("Ignoring unknown config key %r", key)
                continue
            if key == 'sync_config':
                value = strip_sensitive(value or {})
            updates[key] = value

        if not updates:
            return True

        try:
            self.repo.set_settings(updates)
        except Exception as e:
            logger.error("Config update failed: %s", e)
            return False

        logger.info("Config updated: %s", sorted(updates))
        snapshot = self.refresh()
        self.changed.emit(snapshot)
        return True

    def on_change(self, handler: Callable[[Config], None]) -> Callable[[], None]:
        """Register a change handler. Returns its unsubscribe callable."""
        return self.changed.connect(handler)

    def dispose(self):
        self.changed.clear()
        self._cache = None
