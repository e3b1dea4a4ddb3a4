from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

SERVICE_NAME = "skaftin-client"


class TokenStorage(ABC):
    """Abstract key/value backing store for session credentials."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a value. Missing keys are ignored."""
