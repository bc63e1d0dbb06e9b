"""Pushes non-sensitive configuration to the selected remote provider.

Requests arriving less than SYNC_COOLDOWN_SECONDS after the previous transfer
wait in a FIFO queue that is drained one task per cooldown window. Failed
transfers are retried every SYNC_RETRY_SECONDS until one succeeds or the
coordinator is stopped. Work records are never uploaded.
"""

import logging
import threading
from collections import deque
from datetime import datetime
from enum import Enum
from typing import Callable, Deque, Dict, Optional

from config_store import SYNC_PROVIDERS
from models import Config
from notifications import LogNotifier
from providers import LocalTarget, SyncTarget, build_target, default_adapters

logger = logging.getLogger(__name__)

SYNC_COOLDOWN_SECONDS = 5.0
SYNC_RETRY_SECONDS = 60.0
INITIAL_SYNC_DELAY_SECONDS = 1.0

# Provider field -> keyring entry
SECRET_NAMES = {
    'webdav': {'password': 'webdav.password'},
    's3': {'accessKey': 's3.accessKey', 'secretKey': 's3.secretKey'},
    'aliyun-oss': {'accessKey': 'aliyun.accessKey', 'secretKey': 'aliyun.secretKey'},
}

# Provider fields kept in plain configuration
PLAIN_FIELDS = {
    'local': (),
    'webdav': ('endpoint', 'username'),
    's3': ('endpoint', 'bucket', 'region'),
    'aliyun-oss': ('endpoint', 'bucket'),
}

# Uploaded key -> Config attribute
PAYLOAD_FIELDS = (
    ('monthlyIncome', 'monthly_income'),
    ('workDays', 'work_days'),
    ('autoStartWork', 'auto_start_work'),
    ('precisionLevel', 'precision_level'),
    ('workStartTime', 'work_start_time'),
    ('workEndTime', 'work_end_time'),
    ('overtimeEnabled', 'overtime_enabled'),
    ('overtimeRate', 'overtime_rate'),
    ('deductForEarlyLeave', 'deduct_for_early_leave'),
)


class SyncResult(Enum):
    SUCCESS = 'success'
    FAILED = 'failed'
    SKIPPED = 'skipped'
    # Transfer handed to a worker, outcome delivered later on the timer loop
    PENDING = 'pending'


def spawn_thread(work: Callable[[], None]):
    """Run work on a daemon thread so network calls never block the UI."""
    threading.Thread(target=work, name='sync-transfer', daemon=True).start()


class SyncCoordinator:
    """Serializes outbound syncs under a cooldown with automatic retry.

    Provider calls run through spawn (a worker thread by default). Their
    outcome is posted back with timer_loop.call_later(0, ...), so all state
    changes happen on the loop's thread.
    """

    def __init__(self, config_store, secret_store, timer_loop, adapters: Optional[Dict] = None,
                 notifier=None, clock: Callable[[], datetime] = datetime.now,
                 spawn: Callable[[Callable[[], None]], None] = spawn_thread):
        self.config_store = config_store
        self.secret_store = secret_store
        self.loop = timer_loop
        self.adapters = adapters if adapters is not None else default_adapters()
        self.notifier = notifier or LogNotifier()
        self.clock = clock
        self.spawn = spawn

        self.last_success: Optional[datetime] = None

        self._last_sync_time: Optional[float] = None
        self._sync_in_progress = False
        self._queue: Deque[Callable[[], None]] = deque()
        self._stopped = False

        self._drain_job = None
        self._retry_job = None
        self._initial_job = None
        self._unsubscribe_config: Optional[Callable[[], None]] = None

    # === Lifecycle ===

    def start(self):
        """Sync on every config change, plus once shortly after startup."""
        self._stopped = False
        if self._unsubscribe_config is None:
            self._unsubscribe_config = self.config_store.on_change(self._on_config_change)

        if self.config_store.get_snapshot().auto_sync:
            self._initial_job = self.loop.call_later(INITIAL_SYNC_DELAY_SECONDS, self._initial_sync)

    def stop(self):
        self._stopped = True
        if self._unsubscribe_config:
            self._unsubscribe_config()
            self._unsubscribe_config = None
        for attr in ('_drain_job', '_retry_job', '_initial_job'):
            job = getattr(self, attr)
            if job is not None:
                self.loop.cancel(job)
                setattr(self, attr, None)
        if self._queue:
            logger.info("Dropping %d queued sync request(s)", len(self._queue))
        self._queue.clear()

    def dispose(self):
        self.stop()
        self._sync_in_progress = False

    @property
    def sync_in_progress(self) -> bool:
        return self._sync_in_progress

    @property
    def retry_pending(self) -> bool:
        return self._retry_job is not None

    @property
    def queued(self) -> int:
        return len(self._queue)

    # === Request admission ===

    def queue_sync(self, callback: Optional[Callable[[SyncResult], None]] = None):
        """Request a sync now, or after the cooldown if one ran recently.

        callback receives the final SyncResult once this request has been handled.
        """
        if self._stopped:
            logger.debug("Sync coordinator stopped, ignoring request")
            return

        def task():
            self.sync_data(callback)

        now = self.loop.time()
        cooling = self._last_sync_time is not None and now - self._last_sync_time < SYNC_COOLDOWN_SECONDS
        if cooling or self._sync_in_progress or self._queue:
            self._queue.append(task)
            logger.debug("Sync queued (%d waiting)", len(self._queue))
            if self._drain_job is None:
                self._process_queue()
            return

        # Stamp before running so a burst of requests queues up behind this one
        self._last_sync_time = now
        self._run_task(task)

    def _process_queue(self):
        self._drain_job = None

        while self._queue and not self._stopped:
            if self._sync_in_progress:
                # Resumed when the running transfer reports back
                return
            wait = 0.0
            if self._last_sync_time is not None:
                wait = SYNC_COOLDOWN_SECONDS - (self.loop.time() - self._last_sync_time)
            if wait > 0:
                self._drain_job = self.loop.call_later(wait, self._process_queue)
                return

            task = self._queue.popleft()
            self._last_sync_time = self.loop.time()
            self._run_task(task)

    def _resume_queue(self):
        if self._queue and self._drain_job is None and not self._stopped:
            self._process_queue()

    def _run_task(self, task: Callable[[], None]):
        try:
            task()
        except Exception:
            logger.exception("Queued sync task failed")

    def _on_config_change(self, config: Config):
        self.queue_sync()

    def _initial_sync(self):
        self._initial_job = None
        logger.info("Running initial sync")
        self.sync_data()

    # === Transfers ===

    def sync_data(self, callback: Optional[Callable[[SyncResult], None]] = None) -> SyncResult:
        """Upload the current configuration if auto-sync is on.

        Returns PENDING when a transfer was started; callback then gets
        SUCCESS or FAILED once it finishes. Other results are immediate.
        """
        if self._sync_in_progress:
            logger.info("Sync already in progress, skipping")
            return self._deliver(callback, SyncResult.SKIPPED)

        try:
            config = self.config_store.get_snapshot()
            if not config.auto_sync or config.sync_provider == 'local':
                return self._deliver(callback, SyncResult.SUCCESS)

            target = self._resolve_target(config)
            if target is None:
                logger.warning("Sync settings incomplete, skipping sync")
                return self._deliver(callback, SyncResult.FAILED)
            payload = self.build_payload(config)
        except Exception:
            logger.exception("Sync failed")
            self._schedule_retry()
            return self._deliver(callback, SyncResult.FAILED)

        self._sync_in_progress = True
        self._transfer(lambda: self._dispatch(target, payload),
                       lambda outcome: self._finish_sync(target, outcome, callback))
        return SyncResult.PENDING

    def _finish_sync(self, target: SyncTarget, outcome, callback):
        self._sync_in_progress = False
        if outcome is True:
            self._cancel_retry()
            self.last_success = self.clock()
            logger.info("Synced configuration to %s", target.provider)
            result = SyncResult.SUCCESS
        else:
            if isinstance(outcome, Exception):
                logger.error("Sync to %s failed: %s", target.provider, outcome)
            logger.warning("Sync to %s failed, retrying in %ds", target.provider, SYNC_RETRY_SECONDS)
            self._schedule_retry()
            result = SyncResult.FAILED

        self._deliver(callback, result)
        self._resume_queue()

    def manual_sync(self) -> SyncResult:
        """User-triggered sync with exactly one notification.

        The notification is sent when the transfer finishes, or right away
        when nothing needs to be transferred.
        """
        if self._sync_in_progress:
            self.notifier.warning("A sync is already running, please try again later")
            return SyncResult.SKIPPED

        try:
            config = self.config_store.get_snapshot()
            if config.sync_provider == 'local':
                self.notifier.info("Using local storage, nothing to sync")
                return SyncResult.SUCCESS

            target = self._resolve_target(config)
            if target is None:
                self.notifier.error("Sync settings are incomplete, check the cloud sync settings")
                return SyncResult.FAILED
            payload = self.build_payload(config)
        except Exception as e:
            logger.exception("Manual sync failed")
            self.notifier.error(f"Sync failed: {e}")
            return SyncResult.FAILED

        logger.info("Manual sync to %s", target.provider)
        self._sync_in_progress = True
        self._transfer(lambda: self._dispatch(target, payload), self._finish_manual_sync)
        return SyncResult.PENDING

    def _finish_manual_sync(self, outcome):
        self._sync_in_progress = False
        if outcome is True:
            self._cancel_retry()
            self.last_success = self.clock()
            self.notifier.info("Configuration synced")
        elif isinstance(outcome, Exception):
            logger.error("Manual sync failed: %s", outcome)
            self.notifier.error(f"Sync failed: {outcome}")
        else:
            self.notifier.error("Configuration sync failed")
        self._resume_queue()

    def test_connection(self, target: Optional[SyncTarget] = None,
                        callback: Optional[Callable[[bool], None]] = None) -> SyncResult:
        """Check the provider is reachable with target or the saved settings.

        callback receives True or False; for remote providers this happens
        after the check returns from the worker.
        """
        try:
            if target is None:
                target = self._resolve_target(self.config_store.get_snapshot())
        except Exception:
            logger.exception("Connection test failed")
            target = None

        if target is None:
            self._deliver(callback, False)
            return SyncResult.FAILED
        if isinstance(target, LocalTarget):
            self._deliver(callback, True)
            return SyncResult.SUCCESS

        adapter = self.adapters.get(target.provider)
        if adapter is None:
            logger.warning("No adapter for %s", target.provider)
            self._deliver(callback, False)
            return SyncResult.FAILED

        def finish(outcome):
            if isinstance(outcome, Exception):
                logger.warning("Connection test to %s failed: %s", target.provider, outcome)
            self._deliver(callback, outcome is True)

        self._transfer(lambda: adapter.test_reachability(target), finish)
        return SyncResult.PENDING

    def save_sync_config(self, provider: str, config: Dict) -> bool:
        """Store plain fields in config and secrets in the keyring."""
        try:
            if provider not in SYNC_PROVIDERS:
                raise ValueError(f"Unknown sync provider: {provider}")

            plain = {name: str(config.get(name) or '') for name in PLAIN_FIELDS[provider]}

            for field, secret_name in SECRET_NAMES.get(provider, {}).items():
                if config.get(field):
                    self.secret_store.store(secret_name, config[field])

            return self.config_store.update({
                'sync_provider': provider,
                'sync_config': plain,
                'auto_sync': bool(config.get('autoSync')),
            })
        except Exception as e:
            logger.error("Saving sync settings failed: %s", e)
            return False

    def build_payload(self, config: Config) -> Dict:
        """The configuration subset that is uploaded."""
        payload = {key: getattr(config, attr) for key, attr in PAYLOAD_FIELDS}
        payload['lastUpdated'] = self.clock().isoformat()
        return payload

    def _resolve_target(self, config: Config) -> Optional[SyncTarget]:
        provider = config.sync_provider
        fields = dict(config.sync_config or {})
        for field, secret_name in SECRET_NAMES.get(provider, {}).items():
            fields[field] = self.secret_store.get(secret_name) or ''
        return build_target(provider, fields)

    def _dispatch(self, target: SyncTarget, payload: Dict) -> bool:
        adapter = self.adapters.get(target.provider)
        if adapter is None:
            logger.warning("No adapter for %s", target.provider)
            return False
        return bool(adapter.send(target, payload))

    def _transfer(self, call: Callable[[], bool], on_result: Callable[[object], None]):
        """Run call off the loop thread; on_result gets True, False or the exception."""
        def work():
            try:
                outcome = bool(call())
            except Exception as e:
                outcome = e
            self._post(lambda: on_result(outcome))

        self.spawn(work)

    def _post(self, callback: Callable[[], None]):
        try:
            self.loop.call_later(0, callback)
        except Exception as e:
            # Window already closed
            logger.warning("Dropping sync result, timer loop unavailable: %s", e)

    @staticmethod
    def _deliver(callback, result):
        if callback is not None:
            try:
                callback(result)
            except Exception:
                logger.exception("Sync callback failed")
        return result

    # === Retry ===

    def _schedule_retry(self):
        if self._stopped:
            return
        self._cancel_retry()
        self._retry_job = self.loop.call_later(SYNC_RETRY_SECONDS, self._on_retry)

    def _cancel_retry(self):
        if self._retry_job is not None:
            self.loop.cancel(self._retry_job)
            self._retry_job = None

    def _on_retry(self):
        self._retry_job = None
        logger.info("Retrying sync")
        if self.sync_data() is SyncResult.SKIPPED:
            self._schedule_retry()
