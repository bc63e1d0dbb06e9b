"""Income engine with work sessions, live earnings and day rollover."""

import logging
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, List, Optional, Tuple

import db
from events import Signal
from models import Config, DailyData, FinalizedResult, WorkSession, WorkState, finalized_from_dict
from notifications import LogNotifier
from scheduler import AdaptiveScheduler
from utils import (
    calculate_work_days_per_month,
    format_currency,
    get_standard_work_minutes,
    is_workday,
    parse_time_to_minutes,
    round_cents,
    round_half_up,
    today_string,
)

logger = logging.getLogger(__name__)

# Storage keys
DAILY_DATA_KEY = 'dailyIncome.dailyData'
HISTORY_PREFIX = 'dailyIncome.history.'

# Reads within this window reuse the last figures while not working
CACHE_SECONDS = 2.0
AUTO_SAVE_SECONDS = 30


def _clock_time(value: str) -> time:
    minutes = parse_time_to_minutes(value)
    return time(minutes // 60, minutes % 60)


def schedule_bounds(config: Config, day: date) -> Tuple[datetime, datetime]:
    """Start and end of the working window on day. The end may fall on the next day."""
    start = datetime.combine(day, _clock_time(config.work_start_time))
    end = datetime.combine(day, _clock_time(config.work_end_time))
    if end < start:
        end += timedelta(days=1)
    return start, end


def income_rates(config: Config) -> Dict[str, float]:
    """Daily target, per-minute rate and standard window length for a config."""
    daily_target = config.monthly_income / calculate_work_days_per_month(config.work_days)
    standard_minutes = get_standard_work_minutes(config.work_start_time, config.work_end_time)
    per_minute = daily_target / standard_minutes if standard_minutes > 0 else 0.0
    return {
        'daily_target': daily_target,
        'standard_minutes': standard_minutes,
        'per_minute': per_minute,
        'per_hour': per_minute * 60,
    }


def calculate_earnings(config: Config, now: datetime, day: Optional[date] = None) -> Tuple[int, float]:
    """Worked minutes and income on a workday as of now.

    day defaults to now's date; passing an earlier day evaluates that day's
    window from the point of view of now (used when closing a day at midnight).
    """
    rates = income_rates(config)
    standard_minutes = rates['standard_minutes']
    per_minute = rates['per_minute']
    overtime_per_minute = per_minute * config.overtime_rate

    start, end = schedule_bounds(config, day or now.date())

    if now < start:
        minutes = 0.0
        income = 0.0
    elif now <= end:
        minutes = (now - start).total_seconds() / 60
        regular, overtime = minutes, 0.0
        time_of_day = now.hour * 60 + now.minute
        if config.overtime_enabled and time_of_day > parse_time_to_minutes(config.work_end_time):
            regular = min(minutes, standard_minutes)
            overtime = max(0.0, minutes - regular)
        income = regular * per_minute + overtime * overtime_per_minute
    else:
        minutes = (end - start).total_seconds() / 60
        overtime = max(0.0, minutes - standard_minutes)
        income = standard_minutes * per_minute
        if config.overtime_enabled:
            income += overtime * overtime_per_minute

    return int(round_half_up(minutes)), round_cents(income)


class IncomeEngine:
    """Owns the live day, the open work session and the polling timer."""

    def __init__(self, config_store, timer_loop, store=db, activity=None,
                 notifier=None, clock: Callable[[], datetime] = datetime.now):
        self.config_store = config_store
        self.loop = timer_loop
        self.store = store
        self.notifier = notifier or LogNotifier()
        self.clock = clock

        self.current_session: Optional[WorkSession] = None
        self.finalized: Optional[FinalizedResult] = None
        self.state_changed = Signal('state_changed')

        self._cached_config: Optional[Config] = None
        # (loop time, income, worked minutes)
        self._last_calculation: Optional[Tuple[float, float, int]] = None
        self._last_save_time = timer_loop.time()

        self.scheduler = AdaptiveScheduler(timer_loop, self._on_tick, activity, name='income-engine')
        self._unsubscribe_config: Optional[Callable[[], None]] = config_store.on_change(
            self._on_config_change)

        self.daily_data = self._load_today_data()
        self._apply_update_frequency()

    # === Lifecycle ===

    def start(self):
        """Start polling, resume an unfinished session and compute once."""
        self.scheduler.start()
        self._resume_open_session()
        self._invalidate_cache()
        self._recompute()
        self.check_auto_start()

    def stop(self):
        self.scheduler.stop()

    def dispose(self):
        self.stop()
        if self._unsubscribe_config:
            self._unsubscribe_config()
            self._unsubscribe_config = None
        self._save()
        self._cached_config = None

    # === State ===

    @property
    def state(self) -> WorkState:
        if self.current_session is not None:
            return WorkState.WORKING
        if self.finalized is not None:
            return WorkState.STOPPED
        return WorkState.IDLE

    def is_working(self) -> bool:
        return self.current_session is not None

    # === Work sessions ===

    def start_work(self) -> bool:
        """Open a new session. Returns False if one is already open."""
        if self.current_session:
            self.notifier.warning("Already working!")
            return False

        self._begin_session()
        self.notifier.info("Work started")
        return True

    def end_work(self) -> bool:
        """Close the open session and freeze today's figures."""
        if not self.current_session:
            self.notifier.warning("No work session in progress!")
            return False

        session = self.current_session
        now = self.clock()
        try:
            self._ensure_current_day(now)
            if not self.current_session:
                # Already closed at the day boundary
                self.notifier.info("Work session closed at midnight")
                return True

            self.current_session.end_time = now
            self._invalidate_cache()
            self._recompute(now)

            self.finalized = FinalizedResult(
                income=self.daily_data.total_income,
                worked_minutes=self.daily_data.total_worked_minutes,
            )
            logger.info("Work ended: income=%s, minutes=%s",
                        self.finalized.income, self.finalized.worked_minutes)

            self.current_session = None
            self._invalidate_cache()
            self._save()
            self.notifier.info(
                f"Work ended: {format_currency(self.finalized.income)} today")
            return True
        except Exception as e:
            logger.exception("Error ending work")
            # Never leave the session open in the stored day
            session.end_time = session.end_time or now
            self.current_session = None
            self._invalidate_cache()
            self._save()
            self.notifier.error(f"Error ending work: {e}")
            return False
        finally:
            self.state_changed.emit(self.state)

    def reset_today(self):
        """Drop today's sessions and frozen figures."""
        now = self.clock()
        self.current_session = None
        self.finalized = None
        self.daily_data = DailyData(
            date=today_string(now),
            is_workday=is_workday(self._get_config().work_days, now),
        )
        self._invalidate_cache()
        self._save()
        logger.info("Today's data reset")
        self.state_changed.emit(self.state)

    def check_auto_start(self) -> bool:
        """Start work automatically inside the working window when enabled."""
        config = self._get_config()
        if not config.auto_start_work or self.is_working():
            return False

        now = self.clock()
        if not is_workday(config.work_days, now):
            return False

        start, end = schedule_bounds(config, now.date())
        if not start <= now <= end:
            return False

        logger.info("Auto-start conditions met")
        self._begin_session()
        self.notifier.info("Work started automatically")
        return True

    def _begin_session(self):
        now = self.clock()
        self._ensure_current_day(now)
        self.finalized = None

        unfinished = self.daily_data.open_session()
        if unfinished:
            self.current_session = unfinished
            logger.info("Resuming unfinished session started %s", unfinished.start_time)
        else:
            self.current_session = WorkSession(start_time=now, date=today_string(now))
            self.daily_data.sessions.append(self.current_session)
            logger.info("Work started at %s", now.isoformat(timespec="seconds"))

        self._invalidate_cache()
        self._recompute(now)
        self._save()
        self.state_changed.emit(self.state)

    # === Reads ===

    def get_current_income(self) -> float:
        self._ensure_current_day(self.clock())
        if not self.is_working() and self.finalized is not None:
            return self.finalized.income
        if not self.is_working() and self._cache_is_fresh():
            return self._last_calculation[1]
        self._recompute()
        return self.daily_data.total_income

    def get_today_worked_minutes(self) -> int:
        self._ensure_current_day(self.clock())
        if not self.is_working() and self.finalized is not None:
            return self.finalized.worked_minutes
        if not self.is_working() and self._cache_is_fresh():
            return self._last_calculation[2]
        self._recompute()
        return self.daily_data.total_worked_minutes

    def get_daily_data(self) -> DailyData:
        """Copy of the live day after a fresh computation."""
        self._recompute()
        return self.daily_data.copy()

    def get_history_data(self, day: str) -> Optional[DailyData]:
        """Archived record for day (YYYY-MM-DD), or None."""
        try:
            raw = self.store.get_value(HISTORY_PREFIX + day)
        except Exception as e:
            logger.error("History read failed for %s: %s", day, e)
            return None
        if not raw:
            return None
        try:
            return DailyData.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Malformed history record for %s: %s", day, e)
            return None

    def get_history_dates(self) -> List[str]:
        try:
            keys = self.store.get_keys_with_prefix(HISTORY_PREFIX)
        except Exception as e:
            logger.error("History listing failed: %s", e)
            return []
        return [key[len(HISTORY_PREFIX):] for key in keys]

    def get_history_range(self, start: str, end: str) -> List[DailyData]:
        """Archived days with start <= date <= end, oldest first."""
        records = []
        for day in self.get_history_dates():
            if start <= day <= end:
                record = self.get_history_data(day)
                if record:
                    records.append(record)
        return records

    # === Configuration ===

    def update_configuration(self):
        """Re-read config and apply it to the live day and the timer."""
        self._invalidate_cache()
        self._cached_config = None
        config = self._get_config()

        self.daily_data.is_workday = is_workday(config.work_days, self.clock())
        self._apply_update_frequency()
        logger.info("Config applied: update_frequency=%s, adaptive=%s, interval=%dms",
                    config.update_frequency, self.scheduler.adaptive, self.scheduler.interval_ms)

        self._recompute()
        self.check_auto_start()

    def _on_config_change(self, config: Config):
        self._cached_config = None
        self.update_configuration()

    def _apply_update_frequency(self):
        config = self._get_config()
        self.scheduler.configure(config.update_frequency, config.custom_update_frequency)

    def _get_config(self) -> Config:
        if self._cached_config is None:
            self._cached_config = self.config_store.get_snapshot()
        return self._cached_config

    # === Calculation ===

    def _on_tick(self):
        self._recompute()
        if self.is_working() and self.loop.time() - self._last_save_time >= AUTO_SAVE_SECONDS:
            self._save()

    def _recompute(self, now: Optional[datetime] = None):
        now = now or self.clock()
        self._ensure_current_day(now)

        if not self.is_working() and self.finalized is not None:
            self.daily_data.total_income = self.finalized.income
            self.daily_data.total_worked_minutes = self.finalized.worked_minutes
        elif not self.daily_data.is_workday:
            self.daily_data.total_income = 0.0
            self.daily_data.total_worked_minutes = 0
        else:
            minutes, income = calculate_earnings(self._get_config(), now)
            self.daily_data.total_worked_minutes = minutes
            self.daily_data.total_income = income
            logger.debug("Recomputed: working=%s minutes=%s income=%s",
                         self.is_working(), minutes, income)

        self._last_calculation = (
            self.loop.time(),
            self.daily_data.total_income,
            self.daily_data.total_worked_minutes,
        )

    def _ensure_current_day(self, now: datetime):
        """Archive the live day and start a fresh one once the date changes."""
        today = today_string(now)
        if self.daily_data.date == today:
            return

        previous = self.daily_data
        config = self._get_config()
        previous_day = date.fromisoformat(previous.date)
        boundary = datetime.combine(previous_day + timedelta(days=1), time.min)

        if self.current_session:
            # Close the session at the midnight after its day
            self.current_session.end_time = boundary
            logger.info("Closed session at day boundary %s", boundary.isoformat())
            self.current_session = None

        if self.finalized is not None:
            previous.total_income = self.finalized.income
            previous.total_worked_minutes = self.finalized.worked_minutes
        elif previous.is_workday:
            minutes, income = calculate_earnings(config, boundary, day=previous_day)
            previous.total_worked_minutes = minutes
            previous.total_income = income

        self._archive(previous)

        self.finalized = None
        self.daily_data = DailyData(date=today, is_workday=is_workday(config.work_days, now))
        self._invalidate_cache()
        self._save()
        logger.info("Rolled over from %s to %s", previous.date, today)
        self.state_changed.emit(self.state)

    def _cache_is_fresh(self) -> bool:
        return (self._last_calculation is not None
                and self.loop.time() - self._last_calculation[0] < CACHE_SECONDS)

    def _invalidate_cache(self):
        self._last_calculation = None

    # === Persistence ===

    def _resume_open_session(self):
        session = self.daily_data.open_session()
        if session and self.current_session is None:
            self.current_session = session
            self.finalized = None
            logger.info("Resumed unfinished session started %s", session.start_time)
            self.state_changed.emit(self.state)

    def _load_today_data(self) -> DailyData:
        """Load the stored live day.

        A record from an earlier day is kept as-is; the first computation rolls
        it into history.
        """
        now = self.clock()
        workday = is_workday(self._get_config().work_days, now)
        try:
            raw = self.store.get_value(DAILY_DATA_KEY)
        except Exception as e:
            logger.error("Could not load daily data: %s", e)
            raw = None

        if raw:
            try:
                data = DailyData.from_dict(raw, default_workday=workday)
                self.finalized = finalized_from_dict(raw)
                return data
            except (KeyError, TypeError, ValueError) as e:
                logger.error("Discarding malformed daily data: %s", e)

        return DailyData(date=today_string(now), is_workday=workday)

    def _save(self):
        try:
            self.store.set_value(DAILY_DATA_KEY, self.daily_data.to_dict(self.finalized))
            self._last_save_time = self.loop.time()
        except Exception as e:
            logger.error("Daily data save failed: %s", e)

    def _archive(self, data: DailyData):
        try:
            self.store.set_value(HISTORY_PREFIX + data.date, data.to_dict())
            logger.info("Archived %s", data.date)
        except Exception as e:
            logger.error("History save failed for %s: %s", data.date, e)
