"""Shared fixtures: temporary database, virtual-time loop and fake collaborators."""

import itertools
import shutil
import sys
import tempfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import db
from events import Signal

# A Monday
MONDAY = datetime(2026, 10, 19)


class FakeTimerLoop:
    """Timer loop with virtual time. Callbacks only run inside advance()."""

    def __init__(self, start: datetime):
        self._elapsed = 0.0
        self._start = start
        self._jobs = {}
        self._ids = itertools.count(1)

    def time(self) -> float:
        return self._elapsed

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._elapsed)

    def call_later(self, delay, callback):
        handle = next(self._ids)
        self._jobs[handle] = (self._elapsed + delay, handle, callback)
        return handle

    def cancel(self, handle):
        self._jobs.pop(handle, None)

    @property
    def pending(self) -> int:
        return len(self._jobs)

    def delays(self):
        """Remaining delay of every pending job, soonest first."""
        return sorted(due - self._elapsed for due, _, _ in self._jobs.values())

    def advance(self, seconds: float):
        """Move time forward, running due callbacks in order."""
        end = self._elapsed + seconds
        while True:
            due = [job for job in self._jobs.values() if job[0] <= end]
            if not due:
                break
            when, handle, callback = min(due, key=lambda job: (job[0], job[1]))
            del self._jobs[handle]
            self._elapsed = max(self._elapsed, when)
            callback()
        self._elapsed = end

    def jump(self, seconds: float):
        """Move time forward without running anything."""
        self._elapsed += seconds


class RecordingNotifier:
    """Collects (level, message) pairs."""

    def __init__(self):
        self.messages = []

    def info(self, message):
        self.messages.append(('info', message))

    def warning(self, message):
        self.messages.append(('warning', message))

    def error(self, message):
        self.messages.append(('error', message))

    def levels(self):
        return [level for level, _ in self.messages]


class MemorySecretStore:
    def __init__(self, secrets=None):
        self.secrets = dict(secrets or {})

    def get(self, name):
        return self.secrets.get(name)

    def store(self, name, value):
        self.secrets[name] = value


class MemoryStore:
    """Key/value store with the same calls the engine makes on db."""

    def __init__(self):
        self.values = {}
        self.fail_writes = False

    def get_value(self, key):
        return self.values.get(key)

    def set_value(self, key, value):
        if self.fail_writes:
            raise OSError("disk full")
        self.values[key] = value

    def get_keys_with_prefix(self, prefix):
        return sorted(k for k in self.values if k.startswith(prefix))


class MemorySettings:
    """Settings repository for ConfigStore without sqlite."""

    def __init__(self, settings=None):
        self.settings = dict(settings or {})

    def get_all_settings(self):
        return dict(self.settings)

    def set_settings(self, values):
        self.settings.update(values)


class FakeAdapter:
    """Provider adapter that records uploads and returns scripted results."""

    def __init__(self, results=None, reachable=True):
        self.results = list(results or [])
        self.reachable = reachable
        self.sent = []

    def send(self, target, payload):
        self.sent.append((target, payload))
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return True

    def test_reachability(self, target):
        return self.reachable


def run_inline(work):
    """Spawner that runs transfer work immediately on the calling thread."""
    work()


class FakeActivity:
    def __init__(self):
        self.activity = Signal('activity')

    def subscribe(self, handler):
        return self.activity.connect(handler)

    def notify(self):
        self.activity.emit()


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    temp_dir = tempfile.mkdtemp()
    original_get_app_dir = db.get_app_dir
    db.get_app_dir = lambda: Path(temp_dir)
    db.DB_PATH = None
    db.init_db()
    yield temp_dir
    db.get_app_dir = original_get_app_dir
    db.DB_PATH = None
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def loop():
    """Virtual loop starting Monday 13:00."""
    return FakeTimerLoop(MONDAY.replace(hour=13))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def settings():
    return MemorySettings()


@pytest.fixture
def secrets():
    return MemorySecretStore()


@pytest.fixture
def activity():
    return FakeActivity()
