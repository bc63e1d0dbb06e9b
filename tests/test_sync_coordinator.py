"""Tests for the sync coordinator."""

import sys
import threading
import time
from pathlib import Path

import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from conftest import FakeAdapter, run_inline
from config_store import ConfigStore
from providers import LocalTarget, WebDAVTarget
from sync_coordinator import PAYLOAD_FIELDS, SyncCoordinator, SyncResult, spawn_thread

ENDPOINT = 'https://dav.example.com/income'


@pytest.fixture
def config_store(settings):
    settings.settings.update({
        'auto_sync': True,
        'sync_provider': 'webdav',
        'sync_config': {'endpoint': ENDPOINT, 'username': 'me'},
    })
    return ConfigStore(repo=settings)


@pytest.fixture
def adapter():
    return FakeAdapter()


@pytest.fixture
def coordinator(config_store, secrets, loop, adapter, notifier):
    secrets.store('webdav.password', 'pw')
    return SyncCoordinator(config_store, secrets, loop, adapters={'webdav': adapter},
                           notifier=notifier, clock=loop.now, spawn=run_inline)


class TestSyncData:
    """Test single sync attempts."""

    def test_success(self, coordinator, adapter, loop):
        results = []
        assert coordinator.sync_data(results.append) is SyncResult.PENDING
        assert coordinator.sync_in_progress

        loop.advance(0)

        assert results == [SyncResult.SUCCESS]
        assert not coordinator.sync_in_progress
        target, payload = adapter.sent[0]
        assert target == WebDAVTarget(endpoint=ENDPOINT, username='me', password='pw')
        assert set(payload) == {key for key, _ in PAYLOAD_FIELDS} | {'lastUpdated'}
        assert payload['monthlyIncome'] == 10000
        assert payload['lastUpdated'] == '2026-10-19T13:00:00'
        assert coordinator.last_success is not None
        assert not coordinator.retry_pending

    def test_payload_has_no_secrets_or_sessions(self, coordinator, adapter):
        coordinator.sync_data()
        _, payload = adapter.sent[0]
        text = repr(payload)
        assert 'pw' not in text
        assert 'sessions' not in payload
        assert 'syncConfig' not in payload

    def test_local_provider_is_trivial(self, coordinator, adapter):
        coordinator.config_store.update({'sync_provider': 'local'})
        assert coordinator.sync_data() is SyncResult.SUCCESS
        assert adapter.sent == []

    def test_auto_sync_off_is_trivial(self, coordinator, adapter):
        coordinator.config_store.update({'auto_sync': False})
        assert coordinator.sync_data() is SyncResult.SUCCESS
        assert adapter.sent == []

    def test_incomplete_settings_fail_without_retry(self, coordinator, secrets, adapter):
        secrets.secrets.clear()
        assert coordinator.sync_data() is SyncResult.FAILED
        assert adapter.sent == []
        assert not coordinator.retry_pending

    def test_skipped_while_in_progress(self, coordinator, adapter, loop):
        assert coordinator.sync_data() is SyncResult.PENDING
        assert coordinator.sync_data() is SyncResult.SKIPPED
        assert len(adapter.sent) == 1

        loop.advance(0)
        assert coordinator.sync_data() is SyncResult.PENDING
        assert len(adapter.sent) == 2

    def test_transfer_does_not_block_caller(self, coordinator, adapter, loop):
        held = []
        coordinator.spawn = held.append

        assert coordinator.sync_data() is SyncResult.PENDING
        assert adapter.sent == []

        # Worker finishes, but state only changes once the loop runs the result
        held.pop()()
        assert len(adapter.sent) == 1
        assert coordinator.sync_in_progress

        loop.advance(0)
        assert not coordinator.sync_in_progress
        assert coordinator.last_success is not None


class TestRetry:
    """Test automatic retry after failures."""

    def test_retry_until_success(self, coordinator, adapter, loop):
        adapter.results = [False, False, True]
        results = []

        coordinator.sync_data(results.append)
        loop.advance(0)
        assert results == [SyncResult.FAILED]
        assert coordinator.retry_pending

        loop.advance(59)
        assert len(adapter.sent) == 1
        loop.advance(1)
        assert len(adapter.sent) == 2
        assert coordinator.retry_pending

        loop.advance(60)
        assert len(adapter.sent) == 3
        assert not coordinator.retry_pending

        loop.advance(600)
        assert len(adapter.sent) == 3

    def test_adapter_exception_schedules_retry(self, coordinator, adapter, loop):
        adapter.results = [RuntimeError("socket closed")]
        coordinator.sync_data()
        loop.advance(0)
        assert coordinator.retry_pending
        loop.advance(60)
        assert len(adapter.sent) == 2

    def test_single_retry_timer(self, coordinator, adapter, loop):
        adapter.results = [False, False]
        coordinator.sync_data()
        loop.advance(0)
        coordinator.sync_data()
        loop.advance(0)
        assert loop.pending == 1


class TestQueue:
    """Test the cooldown queue."""

    def test_burst_is_spaced_by_cooldown(self, coordinator, adapter, loop):
        results = []
        for _ in range(4):
            coordinator.queue_sync(results.append)

        assert len(adapter.sent) == 1
        assert coordinator.queued == 3

        loop.advance(4)
        assert len(adapter.sent) == 1
        loop.advance(1)
        assert len(adapter.sent) == 2
        loop.advance(5)
        assert len(adapter.sent) == 3
        loop.advance(5)
        assert len(adapter.sent) == 4

        assert results == [SyncResult.SUCCESS] * 4
        assert coordinator.queued == 0
        assert loop.pending == 0

    def test_after_cooldown_runs_immediately(self, coordinator, adapter, loop):
        coordinator.queue_sync()
        loop.advance(6)
        coordinator.queue_sync()
        assert len(adapter.sent) == 2

    def test_failing_task_does_not_stop_drain(self, coordinator, adapter, loop):
        def broken(result):
            raise ValueError("callback failed")

        coordinator.queue_sync()
        coordinator.queue_sync(broken)
        coordinator.queue_sync()
        loop.advance(10)
        assert len(adapter.sent) == 3

    def test_slow_transfer_holds_the_queue(self, coordinator, loop):
        held = []
        coordinator.spawn = held.append

        coordinator.queue_sync()
        coordinator.queue_sync()
        loop.advance(10)
        assert len(held) == 1
        assert coordinator.queued == 1

        held.pop()()
        loop.advance(0)
        assert len(held) == 1
        assert coordinator.queued == 0

    def test_request_during_manual_sync_waits(self, coordinator, adapter, loop):
        coordinator.manual_sync()
        coordinator.queue_sync()
        assert coordinator.queued == 1

        loop.advance(0)
        assert len(adapter.sent) == 2
        assert coordinator.queued == 0


class TestLifecycle:
    """Test start, stop and config-change triggers."""

    def test_initial_sync_after_start(self, coordinator, adapter, loop):
        coordinator.start()
        assert adapter.sent == []
        loop.advance(1)
        assert len(adapter.sent) == 1

    def test_no_initial_sync_when_disabled(self, coordinator, adapter, loop):
        coordinator.config_store.update({'auto_sync': False})
        coordinator.start()
        loop.advance(5)
        assert adapter.sent == []

    def test_config_change_triggers_sync(self, coordinator, adapter):
        coordinator.start()
        coordinator.config_store.update({'monthly_income': 12000})
        assert adapter.sent[-1][1]['monthlyIncome'] == 12000

    def test_stop_cancels_timers(self, coordinator, adapter, loop):
        adapter.results = [False]
        coordinator.start()
        coordinator.sync_data()
        loop.advance(0)
        coordinator.queue_sync()
        coordinator.queue_sync()
        loop.advance(0)

        coordinator.dispose()

        assert loop.pending == 0
        assert not coordinator.retry_pending
        assert coordinator.queued == 0

        sent = len(adapter.sent)
        coordinator.queue_sync()
        coordinator.config_store.update({'monthly_income': 1})
        loop.advance(120)
        assert len(adapter.sent) == sent

    def test_restart_does_not_run_requests_from_before_stop(self, coordinator, adapter, loop):
        stale, fresh = [], []
        coordinator.queue_sync()
        coordinator.queue_sync(stale.append)
        loop.advance(0)

        coordinator.stop()
        assert coordinator.queued == 0

        coordinator.start()
        coordinator.queue_sync(fresh.append)
        loop.advance(10)

        assert stale == []
        assert fresh == [SyncResult.SUCCESS]
        # first request, initial sync after restart, fresh request
        assert len(adapter.sent) == 3
        assert coordinator.queued == 0


class TestManualSync:
    """Test user-triggered syncs."""

    def test_success_notifies_once(self, coordinator, notifier, loop):
        assert coordinator.manual_sync() is SyncResult.PENDING
        assert notifier.messages == []
        loop.advance(0)
        assert notifier.messages == [('info', "Configuration synced")]

    def test_failure_notifies_once(self, coordinator, adapter, notifier, loop):
        adapter.results = [False]
        coordinator.manual_sync()
        loop.advance(0)
        assert notifier.levels() == ['error']
        assert not coordinator.retry_pending

    def test_exception_notifies_once(self, coordinator, adapter, notifier, loop):
        adapter.results = [RuntimeError("boom")]
        coordinator.manual_sync()
        loop.advance(0)
        assert notifier.messages == [('error', "Sync failed: boom")]

    def test_local(self, coordinator, notifier):
        coordinator.config_store.update({'sync_provider': 'local'})
        assert coordinator.manual_sync() is SyncResult.SUCCESS
        assert notifier.levels() == ['info']

    def test_incomplete(self, coordinator, secrets, notifier):
        secrets.secrets.clear()
        assert coordinator.manual_sync() is SyncResult.FAILED
        assert notifier.levels() == ['error']

    def test_rejected_while_in_progress(self, coordinator, notifier, loop):
        coordinator.sync_data()
        assert coordinator.manual_sync() is SyncResult.SKIPPED
        assert notifier.levels() == ['warning']

        loop.advance(0)
        assert notifier.levels() == ['warning']


class TestConnection:
    """Test reachability checks."""

    def test_saved_settings(self, coordinator, adapter, loop):
        results = []
        assert coordinator.test_connection(callback=results.append) is SyncResult.PENDING
        loop.advance(0)
        adapter.reachable = False
        coordinator.test_connection(callback=results.append)
        loop.advance(0)
        assert results == [True, False]

    def test_draft_target(self, coordinator, adapter, loop):
        results = []
        draft = WebDAVTarget(endpoint='https://other', username='u', password='p')
        coordinator.test_connection(draft, results.append)
        loop.advance(0)
        assert results == [True]
        assert adapter.sent == []

    def test_local(self, coordinator):
        results = []
        assert coordinator.test_connection(LocalTarget(), results.append) is SyncResult.SUCCESS
        assert results == [True]

    def test_incomplete(self, coordinator, secrets):
        results = []
        secrets.secrets.clear()
        assert coordinator.test_connection(callback=results.append) is SyncResult.FAILED
        assert results == [False]

    def test_reachability_error(self, coordinator, loop):
        class Unreachable(FakeAdapter):
            def test_reachability(self, target):
                raise OSError("no route to host")

        results = []
        coordinator.adapters['webdav'] = Unreachable()
        coordinator.test_connection(callback=results.append)
        loop.advance(0)
        assert results == [False]


class TestWorkerThread:
    """Test transfers on the default worker thread."""

    def test_spawn_thread_runs_off_caller(self):
        done = threading.Event()
        seen = []

        def work():
            seen.append(threading.current_thread())
            done.set()

        spawn_thread(work)
        assert done.wait(2)
        assert seen[0] is not threading.current_thread()
        assert seen[0].daemon

    def test_result_posted_back_to_loop(self, config_store, secrets, loop, adapter):
        secrets.store('webdav.password', 'pw')
        coordinator = SyncCoordinator(config_store, secrets, loop, adapters={'webdav': adapter},
                                      clock=loop.now)

        assert coordinator.sync_data() is SyncResult.PENDING

        deadline = time.monotonic() + 2
        while loop.pending == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert coordinator.sync_in_progress

        loop.advance(0)
        assert not coordinator.sync_in_progress
        assert coordinator.last_success is not None


class TestSaveSyncConfig:
    """Test splitting settings between config and keyring."""

    def test_split(self, coordinator, settings, secrets):
        ok = coordinator.save_sync_config('s3', {
            'endpoint': 'https://s3.example.com',
            'bucket': 'income',
            'region': 'eu-west-1',
            'accessKey': 'AK',
            'secretKey': 'SK',
            'autoSync': True,
        })

        assert ok is True
        assert secrets.secrets['s3.accessKey'] == 'AK'
        assert secrets.secrets['s3.secretKey'] == 'SK'
        assert settings.settings['sync_provider'] == 's3'
        assert settings.settings['sync_config'] == {
            'endpoint': 'https://s3.example.com', 'bucket': 'income', 'region': 'eu-west-1'}
        assert settings.settings['auto_sync'] is True

    def test_unknown_provider(self, coordinator):
        assert coordinator.save_sync_config('ftp', {}) is False

    def test_keyring_failure(self, coordinator, secrets):
        def fail(name, value):
            raise RuntimeError("locked")

        secrets.store = fail
        assert coordinator.save_sync_config('webdav', {'password': 'x'}) is False


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
