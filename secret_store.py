"""Sync credentials kept in the OS keyring."""

import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError

logger = logging.getLogger(__name__)

SERVICE_NAME = "incometool"


class SecretStore:
    """Reads and writes named secrets under one keyring service."""

    def __init__(self, service: str = SERVICE_NAME):
        self.service = service

    def get(self, name: str) -> Optional[str]:
        try:
            return keyring.get_password(self.service, name)
        except KeyringError as e:
            logger.error("Keyring read failed for %s: %s", name, e)
            return None

    def store(self, name: str, value: str):
        try:
            keyring.set_password(self.service, name, value)
        except KeyringError as e:
            logger.error("Keyring write failed for %s: %s", name, e)
            raise
