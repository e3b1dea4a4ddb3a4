"""Process-wide broadcast signals.

The refresh coordinators send :data:`auth_logout` once per failed refresh cycle.
Session handling code (UI state, redirects) connects receivers to it::

    from skaftin.client.signals import auth_logout

    def on_logout(reason: str) -> None:
        ...

    auth_logout.connect(on_logout)
"""

import logging
import threading
from typing import Callable, List

logger = logging.getLogger(__name__)

Receiver = Callable[..., None]


class Signal:
    """A named broadcast with keyword-only payloads."""

    def __init__(self, name: str):
        self.name = name
        self._receivers: List[Receiver] = []
        self._lock = threading.Lock()

    def connect(self, receiver: Receiver) -> Receiver:
        """Register a receiver. Returns it, so this can be used as a decorator."""
        with self._lock:
            if receiver not in self._receivers:
                self._receivers.append(receiver)
        return receiver

    def disconnect(self, receiver: Receiver) -> None:
        with self._lock:
            if receiver in self._receivers:
                self._receivers.remove(receiver)

    @property
    def receivers(self) -> List[Receiver]:
        with self._lock:
            return list(self._receivers)

    def send(self, **kwargs) -> int:
        """Call every receiver with ``kwargs``. Returns the number of receivers called.

        A receiver that raises is logged and does not prevent the remaining receivers from running.
        """
        receivers = self.receivers
        for receiver in receivers:
            try:
                receiver(**kwargs)
            except Exception:
                logger.exception("Receiver %r for signal %s failed", receiver, self.name)
        return len(receivers)

    def __repr__(self) -> str:
        return f"Signal({self.name!r})"


auth_logout = Signal("auth:logout")
