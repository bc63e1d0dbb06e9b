"""Request/response commands consumed by the UI.

Each request is a dict with a "type" key; each response is a dict with at
least "type" and "success", plus "error" on failure.
"""

import logging
from typing import Any, Callable, Dict

from providers import build_target
from sync_coordinator import SyncResult

logger = logging.getLogger(__name__)


def _public(record: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in record.items() if not k.startswith('_')}


class CommandHandler:
    """Routes UI requests to the income engine and the sync coordinator."""

    def __init__(self, engine, sync, config_store):
        self.engine = engine
        self.sync = sync
        self.config_store = config_store
        self._handlers: Dict[str, Callable[[Dict], Dict]] = {
            'startWork': self._start_work,
            'endWork': self._end_work,
            'resetToday': self._reset_today,
            'manualSync': self._manual_sync,
            'saveSyncConfig': self._save_sync_config,
            'testConnection': self._test_connection,
            'getSnapshot': self._get_snapshot,
            'updateConfig': self._update_config,
            'getHistory': self._get_history,
        }

    def handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        kind = message.get('type')
        handler = self._handlers.get(kind)
        if handler is None:
            return {'type': kind, 'success': False, 'error': f"Unknown command: {kind}"}

        try:
            response = handler(message)
        except Exception as e:
            logger.exception("Command %s failed", kind)
            return {'type': kind, 'success': False, 'error': str(e)}

        response['type'] = kind
        return response

    def snapshot(self) -> Dict[str, Any]:
        """Current read model: config, live day and working flag."""
        return {
            'config': self.config_store.get_snapshot().to_dict(),
            'dailyData': _public(self.engine.get_daily_data().to_dict()),
            'isWorking': self.engine.is_working(),
        }

    def _start_work(self, message):
        ok = self.engine.start_work()
        return {'success': ok, 'data': self.snapshot()}

    def _end_work(self, message):
        ok = self.engine.end_work()
        return {'success': ok, 'data': self.snapshot()}

    def _reset_today(self, message):
        self.engine.reset_today()
        return {'success': True, 'data': self.snapshot()}

    def _manual_sync(self, message):
        result = self.sync.manual_sync()
        ok = result in (SyncResult.SUCCESS, SyncResult.PENDING)
        return {'success': ok, 'data': {'result': result.value}}

    def _save_sync_config(self, message):
        provider = message.get('provider', 'local')
        ok = self.sync.save_sync_config(provider, message.get('config') or {})
        return {'success': ok}

    def _test_connection(self, message):
        """Start a reachability check; "callback" in the message gets the outcome."""
        callback = message.get('callback')
        draft = message.get('config')
        target = None
        if draft:
            target = build_target(draft.get('provider', 'local'), draft)
            if target is None:
                return {'success': False, 'error': "Connection settings are incomplete"}

        result = self.sync.test_connection(target, callback)
        ok = result in (SyncResult.SUCCESS, SyncResult.PENDING)
        return {'success': ok, 'data': {'result': result.value}}

    def _get_snapshot(self, message):
        return {'success': True, 'data': self.snapshot()}

    def _update_config(self, message):
        ok = self.config_store.update(message.get('config') or {})
        return {'success': ok, 'data': self.snapshot()}

    def _get_history(self, message):
        if 'date' in message:
            record = self.engine.get_history_data(message['date'])
            return {'success': True, 'data': _public(record.to_dict()) if record else None}

        records = self.engine.get_history_range(message.get('start', ''), message.get('end', '9999-12-31'))
        return {'success': True, 'data': [_public(r.to_dict()) for r in records]}
