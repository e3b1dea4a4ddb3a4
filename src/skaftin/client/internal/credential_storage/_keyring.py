from __future__ import annotations

import logging
from typing import Optional

from skaftin.client.internal.credential_storage._base import SERVICE_NAME, TokenStorage

log = logging.getLogger(__name__)

_UNAVAILABLE = object()


def _import_keyring():
    try:
        import keyring

        backend = keyring.get_keyring()
    except Exception:
        log.debug("keyring is not available", exc_info=True)
        return None
    # keyring.backends.fail.Keyring is what you get when no real backend is configured
    if "fail" in type(backend).__name__.lower():
        log.debug("keyring has no usable backend (%s)", type(backend).__name__)
        return None
    return keyring


class KeyringTokenStorage(TokenStorage):
    """Storage backed by the system keyring. Behaves as empty when no keyring is usable."""

    def __init__(self, service_name: str = SERVICE_NAME) -> None:
        self.service_name = service_name
        self._module = None

    def _keyring(self):
        if self._module is None:
            self._module = _import_keyring() or _UNAVAILABLE
        return None if self._module is _UNAVAILABLE else self._module

    def available(self) -> bool:
        return self._keyring() is not None

    def get(self, key: str) -> Optional[str]:
        kr = self._keyring()
        if kr is None:
            return None
        try:
            return kr.get_password(self.service_name, key)
        except Exception:
            log.debug("Failed to read %s from keyring", key, exc_info=True)
            return None

    def set(self, key: str, value: str) -> None:
        kr = self._keyring()
        if kr is None:
            return
        try:
            kr.set_password(self.service_name, key, value)
            log.debug("Saved %s to keyring", key)
        except Exception:
            log.debug("Failed to save %s to keyring", key, exc_info=True)

    def delete(self, key: str) -> None:
        kr = self._keyring()
        if kr is None:
            return
        try:
            kr.delete_password(self.service_name, key)
            log.debug("Removed %s from keyring", key)
        except Exception:
            log.debug("Failed to remove %s from keyring", key, exc_info=True)
