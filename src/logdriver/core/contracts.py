"""ABC contracts for per-key loggers and dispatch controllers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class EventLoggerABC(ABC):
    """Contract for anything that accepts events for one log key."""

    @abstractmethod
    def log(self, event: Any = None, extra: Any = None, run: Any = None) -> Any:
        """Normalize and buffer one event."""
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        """Empty both halves of the key's buffer."""
        raise NotImplementedError


class DispatchControllerABC(EventLoggerABC):
    """Contract for controllers that dispatch a key's buffer in batches."""

    @abstractmethod
    def trigger(self, send_fn: Any = None, prep_fn: Any = None, override: bool = False) -> Any:
        """Start a send of the active buffer, or return False if not performed."""
        raise NotImplementedError

    @abstractmethod
    def check(self) -> Any:
        """Trigger a send if the pending threshold has been reached."""
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Stop the periodic timer and release the key."""
        raise NotImplementedError
