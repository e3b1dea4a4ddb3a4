from __future__ import annotations

import threading
from typing import Dict, Optional

from skaftin.client.internal.credential_storage._base import TokenStorage

_session_values: Dict[str, str] = {}
_session_lock = threading.Lock()


class MemoryTokenStorage(TokenStorage):
    """Private in-memory storage, lost with the instance."""

    def __init__(self) -> None:
        self._values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class SessionTokenStorage(TokenStorage):
    """Storage shared by every instance in the process, lost when the process exits."""

    def get(self, key: str) -> Optional[str]:
        with _session_lock:
            return _session_values.get(key)

    def set(self, key: str, value: str) -> None:
        with _session_lock:
            _session_values[key] = value

    def delete(self, key: str) -> None:
        with _session_lock:
            _session_values.pop(key, None)
