"""Backing stores for session credentials.

All keyring imports are lazy so the module works when keyring is not installed.
"""

from __future__ import annotations

from skaftin.client.internal.credential_storage._base import TokenStorage
from skaftin.client.internal.credential_storage._file import FileTokenStorage
from skaftin.client.internal.credential_storage._keyring import KeyringTokenStorage
from skaftin.client.internal.credential_storage._memory import MemoryTokenStorage, SessionTokenStorage

STORAGE_MODES = ("auto", "keyring", "file", "session", "memory")


def make_storage(mode: str) -> TokenStorage:
    """Return a TokenStorage for the given mode.

    Modes:
      auto    – keyring if available, file otherwise
      keyring – system keyring only
      file    – JSON file on disk
      session – shared by every client in this process
      memory  – private to one client
    """
    if mode == "memory":
        return MemoryTokenStorage()
    if mode == "session":
        return SessionTokenStorage()
    if mode == "file":
        return FileTokenStorage()
    if mode == "keyring":
        return KeyringTokenStorage()
    if mode != "auto":
        raise ValueError(f"Unknown storage mode: {mode}. Expected one of {', '.join(STORAGE_MODES)}")
    candidate = KeyringTokenStorage()
    if candidate.available():
        return candidate
    return FileTokenStorage()


__all__ = [
    "TokenStorage",
    "FileTokenStorage",
    "KeyringTokenStorage",
    "MemoryTokenStorage",
    "SessionTokenStorage",
    "STORAGE_MODES",
    "make_storage",
]
