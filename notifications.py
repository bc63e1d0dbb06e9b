"""User-visible notifications.

Services call info/warning/error on whatever notifier they were given. The
tk app passes a message-box notifier; everything else falls back to the log.
"""

import logging

logger = logging.getLogger(__name__)


class LogNotifier:
    """Notifier that only writes to the log."""

    def info(self, message: str):
        logger.info(message)

    def warning(self, message: str):
        logger.warning(message)

    def error(self, message: str):
        logger.error(message)
