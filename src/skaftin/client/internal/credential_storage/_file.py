from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from skaftin.client import DEFAULT_CREDENTIALS_PATH
from skaftin.client.internal.credential_storage._base import TokenStorage

log = logging.getLogger(__name__)


class FileTokenStorage(TokenStorage):
    """Storage backed by a JSON file on disk, shared by every process using the same path."""

    def __init__(self, path: Path = DEFAULT_CREDENTIALS_PATH) -> None:
        self.path = Path(path)

    def _load_all(self) -> dict:
        try:
            return json.loads(self.path.read_text())
        except FileNotFoundError:
            return {}
        except Exception:
            log.debug("Failed to read credentials file %s", self.path, exc_info=True)
            return {}

    def _save_all(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Created owner-only; an existing file is tightened before new content goes in
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            self.path.chmod(0o600)
            json.dump(data, f, indent=2)

    def get(self, key: str) -> Optional[str]:
        value = self._load_all().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        try:
            data = self._load_all()
            data[key] = value
            self._save_all(data)
            log.debug("Saved %s to credentials file", key)
        except Exception:
            log.debug("Failed to write %s to credentials file", key, exc_info=True)

    def delete(self, key: str) -> None:
        try:
            data = self._load_all()
            if key in data:
                del data[key]
                self._save_all(data)
            log.debug("Removed %s from credentials file", key)
        except Exception:
            log.debug("Failed to remove %s from credentials file", key, exc_info=True)
