"""
Keyed in-memory store behind every logger, sender and driver.

Holds, per log key, the double buffer and sender state, plus the key
registry, the paused (jammed) set, key ownership and change subscribers.
All mutation goes through one lock so ``log()`` may be called from any
thread while sends complete on the event loop.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterable, Optional

from logdriver.config import ContextProvider, EventContext
from logdriver.constants import ALL_CAPABILITIES, Capability, SenderState
from logdriver.core.buffers import BufferPair
from logdriver.errors import KeyOwnershipError
from logdriver.events import EventRecord, normalize_event

logger = logging.getLogger(__name__)

Subscriber = Callable[[Optional[str]], None]


def split_capabilities(capabilities: Any = None) -> tuple[frozenset[Capability], list[Any]]:
    """
    Separate recognised capabilities from unknown ones.

    Accepts Capability members or their names; None means all of them.
    Returns ``(capabilities, unknown)``.
    """
    if capabilities is None:
        return ALL_CAPABILITIES, []
    if isinstance(capabilities, (str, Capability)) or not isinstance(capabilities, Iterable):
        capabilities = [capabilities]

    result = set()
    unknown = []
    for capability in capabilities:
        if isinstance(capability, Capability):
            result.add(capability)
            continue
        try:
            result.add(Capability(capability))
        except (ValueError, TypeError):
            unknown.append(capability)
    return frozenset(result), unknown


def coerce_capabilities(capabilities: Any = None) -> frozenset[Capability]:
    """Recognised capabilities only; unknown names are logged and dropped."""
    result, unknown = split_capabilities(capabilities)
    if unknown:
        logger.warning(
            "Ignoring unknown capabilities %r; expected %s",
            unknown, sorted(c.value for c in Capability),
        )
    return result


class LogStore:
    """Explicit key-value store for buffers, pause state and the key registry."""

    def __init__(self, context_provider: Optional[ContextProvider] = None):
        self._lock = threading.RLock()
        self._buffers: dict[str, BufferPair] = {}
        self._registry: dict[str, None] = {}
        self._paused: dict[str, set[Capability]] = {}
        self._owners: dict[str, object] = {}
        self._subscribers: list[Subscriber] = []
        self._context_provider = context_provider or EventContext.default

    # -- registry -----------------------------------------------------------

    def register_keys(self, keys: Iterable[str]) -> list[str]:
        """Add keys to the registry; returns only the ones that were new."""
        added = []
        with self._lock:
            for key in keys:
                if key not in self._registry:
                    self._registry[key] = None
                    self._buffers[key] = BufferPair()
                    added.append(key)
        if added:
            logger.debug("LogStore: registered keys %s", added)
        return added

    def known_keys(self) -> list[str]:
        with self._lock:
            return list(self._registry)

    def is_known(self, key: str) -> bool:
        with self._lock:
            return key in self._registry

    def _pair(self, key: str) -> BufferPair:
        # caller holds the lock
        if key not in self._registry:
            self._registry[key] = None
            self._buffers[key] = BufferPair()
        return self._buffers[key]

    # -- buffers ------------------------------------------------------------

    def log(self, key: str, raw: Any = None, extra: Any = None) -> Optional[EventRecord]:
        """Normalize ``raw`` and append it; returns None if logging is jammed."""
        record = normalize_event(raw, extra, self._context_provider())
        if not self.append(key, record):
            return None
        return record

    def append(self, key: str, record: EventRecord) -> bool:
        with self._lock:
            pair = self._pair(key)
            if Capability.LOGGING in self._paused.get(key, ()):
                logger.debug("LogStore: dropped record for jammed key '%s'", key)
                return False
            pair.append(record)
        self._notify(key)
        return True

    def read_all(self, key: str) -> list[EventRecord]:
        with self._lock:
            return self._pair(key).read_all()

    def read_active(self, key: str) -> list[EventRecord]:
        with self._lock:
            return list(self._pair(key).active)

    def read_aggregate(self, keys: Iterable[str]) -> dict[str, list[EventRecord]]:
        with self._lock:
            return {key: self._pair(key).read_all() for key in keys}

    def clear(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        with self._lock:
            for key in keys:
                self._pair(key).clear()
        for key in keys:
            self._notify(key)

    # -- sender state -------------------------------------------------------

    def state(self, key: str) -> SenderState:
        with self._lock:
            return self._pair(key).state

    def begin_send(self, key: str, override: bool = False) -> Optional[list[EventRecord]]:
        """
        Atomically check the send guards and enter SENDING.

        Returns the snapshot of the active buffer, or None when the key is
        jammed for sending or (without override) already sending.
        """
        with self._lock:
            pair = self._pair(key)
            if Capability.SENDING in self._paused.get(key, ()):
                return None
            if pair.state is SenderState.SENDING and not override:
                return None
            snapshot = pair.begin_send()
        self._notify(key)
        return snapshot

    def finish_send(self, key: str, sent: list[EventRecord], success: bool) -> None:
        with self._lock:
            self._pair(key).finish_send(sent, success)
        self._notify(key)

    # -- pause state --------------------------------------------------------

    def jam(self, keys: Iterable[str], capabilities: Any = None) -> list[str]:
        capabilities = coerce_capabilities(capabilities)
        if not capabilities:
            return []
        keys = list(keys)
        with self._lock:
            for key in keys:
                self._pair(key)
                self._paused.setdefault(key, set()).update(capabilities)
        if keys:
            logger.info(
                "LogStore: jammed %s for %s",
                keys, sorted(c.value for c in capabilities),
            )
            self._notify(None)
        return keys

    def drive(self, keys: Optional[Iterable[str]] = None, capabilities: Any = None) -> list[str]:
        """
        Resume keys.

        With no keys every pause is lifted. With keys, only those are resumed
        (for the given capabilities, or entirely when none are given).
        """
        capabilities = coerce_capabilities(capabilities)
        if keys is not None and not capabilities:
            return []
        with self._lock:
            if keys is None:
                resumed = list(self._paused)
                self._paused.clear()
            else:
                resumed = []
                for key in keys:
                    paused = self._paused.get(key)
                    if paused is None:
                        continue
                    paused.difference_update(capabilities)
                    if not paused:
                        del self._paused[key]
                    resumed.append(key)
        logger.info("LogStore: resumed %s", "all keys" if keys is None else resumed)
        self._notify(None)
        return resumed

    def is_paused(self, key: str, capability: Any = None) -> bool:
        """True if ``key`` is jammed for any of the given capabilities."""
        capabilities = coerce_capabilities(capability)
        with self._lock:
            return bool(self._paused.get(key, set()) & capabilities)

    def paused_keys(self) -> dict[str, frozenset[Capability]]:
        with self._lock:
            return {key: frozenset(caps) for key, caps in self._paused.items()}

    # -- ownership ----------------------------------------------------------

    def claim(self, key: str, owner: object) -> None:
        """Make ``owner`` the single dispatcher for ``key``."""
        with self._lock:
            self._pair(key)
            current = self._owners.get(key)
            if current is not None and current is not owner:
                raise KeyOwnershipError(key, current)
            self._owners[key] = owner

    def release(self, key: str, owner: object) -> None:
        with self._lock:
            if self._owners.get(key) is owner:
                del self._owners[key]

    def owner(self, key: str) -> Optional[object]:
        with self._lock:
            return self._owners.get(key)

    # -- subscriptions ------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Observe changes. ``callback`` receives the changed key, or None for
        pause-state changes. Returns a function that unsubscribes.
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, key: Optional[str]) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(key)
            except Exception as exc:
                logger.error("LogStore: subscriber %r failed: %s", callback, exc, exc_info=True)


_default_store: Optional[LogStore] = None
_default_store_lock = threading.Lock()


def get_default_store() -> LogStore:
    """Process-wide store used when no explicit store is given."""
    global _default_store
    with _default_store_lock:
        if _default_store is None:
            _default_store = LogStore()
        return _default_store


def reset_default_store() -> LogStore:
    """Replace the process-wide store with a fresh one (mainly for tests)."""
    global _default_store
    with _default_store_lock:
        _default_store = LogStore()
        return _default_store
