"""Minimal observer list used for change notification."""

import itertools
import logging
from typing import Callable, Dict

logger = logging.getLogger(__name__)


class Signal:
    """Holds handlers and calls each of them on emit.

    connect() returns a callable that removes exactly that registration.
    A handler that raises is logged and the remaining handlers still run.
    """

    def __init__(self, name: str = 'signal'):
        self.name = name
        self._handlers: Dict[int, Callable] = {}
        self._ids = itertools.count()

    def connect(self, handler: Callable) -> Callable[[], None]:
        token = next(self._ids)
        self._handlers[token] = handler

        def unsubscribe():
            self._handlers.pop(token, None)

        return unsubscribe

    def emit(self, *args, **kwargs):
        for handler in list(self._handlers.values()):
            try:
                handler(*args, **kwargs)
            except Exception:
                logger.exception("%s handler failed", self.name)

    def clear(self):
        self._handlers.clear()

    def __len__(self) -> int:
        return len(self._handlers)
