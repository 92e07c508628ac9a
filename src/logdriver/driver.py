"""
Multi-key orchestration: registration, jam/drive, bulk clear and logout.

A ``LogDriver`` looks after a set of log keys (an explicit list, or every
key the store knows about) independently of how each key's sender batches
its sends.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from logdriver.constants import Capability, SenderState
from logdriver.core.contracts import DispatchControllerABC
from logdriver.core.sender import NOT_PERFORMED, Logger, SendFn, SendOutcome
from logdriver.core.store import LogStore, get_default_store, split_capabilities
from logdriver.errors import ConfigurationError
from logdriver.events import EventRecord
from logdriver.keys import sanitize_key, sanitize_keys

logger = logging.getLogger(__name__)

UNKNOWN_KEY_POLICIES = ("drop", "register")


@dataclass(frozen=True)
class DriverStatus:
    """Snapshot of what a driver is looking after."""

    keys: list[str]
    logs: dict[str, list[EventRecord]]
    jammed: list[str]
    driving: list[str]


class LogDriver:
    """
    Pause, resume, clear and read a set of log keys.

    Args:
        keys: Keys to look after. None tracks every key in the store,
              evaluated on each call.
        store: Store to operate on (defaults to the process-wide store)
        unknown_keys: What ``jam`` does with explicit keys the registry has
              never seen: "drop" ignores them, "register" adds them first so
              they start out jammed.
    """

    def __init__(
        self,
        keys: Optional[Iterable[Any]] = None,
        *,
        store: Optional[LogStore] = None,
        unknown_keys: str = "drop",
    ):
        self.store = store if store is not None else get_default_store()
        self.errors: list[ConfigurationError] = []

        if unknown_keys not in UNKNOWN_KEY_POLICIES:
            self.errors.append(ConfigurationError(
                f"unknown_keys must be one of {UNKNOWN_KEY_POLICIES}, got {unknown_keys!r}"
            ))
            logger.warning("LogDriver: invalid unknown_keys policy %r, using 'drop'", unknown_keys)
            unknown_keys = "drop"
        self.unknown_keys = unknown_keys

        self._tracked: Optional[list[str]] = None
        if keys is not None:
            self._tracked = sanitize_keys(keys)
            self.store.register_keys(self._tracked)

    @property
    def keys(self) -> list[str]:
        if self._tracked is None:
            return self.store.known_keys()
        return list(self._tracked)

    def register_keys(self, keys: Iterable[Any]) -> list[str]:
        """Register keys (idempotent) and start tracking them."""
        keys = sanitize_keys(keys)
        added = self.store.register_keys(keys)
        if self._tracked is not None:
            self._tracked.extend(k for k in keys if k not in self._tracked)
        return added

    def _resolve(self, target: Any) -> list[str]:
        if target is True:
            return self.keys
        if target is False or target is None:
            return []
        if isinstance(target, (list, tuple, set, frozenset)):
            return sanitize_keys(list(target))
        return [sanitize_key(target)]

    # -- pause / resume -----------------------------------------------------

    def _capabilities(self, capabilities: Any) -> frozenset[Capability]:
        valid, unknown = split_capabilities(capabilities)
        if unknown:
            self.errors.append(ConfigurationError(
                f"Unknown capabilities {unknown!r}; expected one of "
                f"{sorted(c.value for c in Capability)}"
            ))
            logger.warning("LogDriver: ignoring unknown capabilities %r", unknown)
        return valid

    def jam(self, keys: Any = True, capabilities: Any = ("logging", "sending")) -> list[str]:
        """
        Pause logging and/or sending.

        ``True`` jams every tracked key, ``False`` nothing, and an explicit
        key or list is filtered through the ``unknown_keys`` policy.
        Returns the keys actually jammed.
        """
        explicit = keys is not True
        targets = self._resolve(keys)
        if explicit and targets:
            if self.unknown_keys == "register":
                self.store.register_keys(targets)
            else:
                dropped = [k for k in targets if not self.store.is_known(k)]
                if dropped:
                    logger.debug("LogDriver: not jamming unknown keys %s", dropped)
                targets = [k for k in targets if k not in dropped]
        return self.store.jam(targets, self._capabilities(capabilities))

    def drive(self, keys: Any = None, capabilities: Any = None) -> list[str]:
        """
        Resume keys. With no argument every pause in the store is lifted,
        including keys this driver does not track.
        """
        if keys is None:
            return self.store.drive()
        return self.store.drive(self._resolve(keys), self._capabilities(capabilities))

    # -- buffers ------------------------------------------------------------

    def clear(self, keys: Any = None) -> None:
        """Empty buffers for the given keys, or for every tracked key."""
        targets = self.keys if keys is None else self._resolve(keys)
        self.store.clear(targets)
        logger.debug("LogDriver: cleared %s", targets)

    def read_aggregate(self, keys: Any = None) -> dict[str, list[EventRecord]]:
        """Active and staged records per key, read fresh on every call."""
        targets = self.keys if keys is None else self._resolve(keys)
        return self.store.read_aggregate(targets)

    @property
    def logs(self) -> dict[str, list[EventRecord]]:
        return self.read_aggregate()

    @property
    def jammed(self) -> list[str]:
        paused = self.store.paused_keys()
        return [k for k in self.keys if k in paused]

    @property
    def driving(self) -> list[str]:
        paused = self.store.paused_keys()
        return [k for k in self.keys if k not in paused]

    def status(self) -> DriverStatus:
        keys = self.keys
        paused = self.store.paused_keys()
        return DriverStatus(
            keys=keys,
            logs=self.store.read_aggregate(keys),
            jammed=[k for k in keys if k in paused],
            driving=[k for k in keys if k not in paused],
        )

    # -- logout -------------------------------------------------------------

    def _flush_key(self, key: str, send_fn: Optional[SendFn]):
        if not self.store.read_active(key):
            return NOT_PERFORMED
        if self.store.state(key) is SenderState.SENDING:
            return NOT_PERFORMED
        owner = self.store.owner(key)
        if isinstance(owner, DispatchControllerABC):
            return owner.trigger(override=True)
        if send_fn is not None:
            return Logger(key, store=self.store).send_with(send_fn)
        return NOT_PERFORMED

    async def logout(self, unload_all: bool = False, send_fn: Optional[SendFn] = None) -> list[SendOutcome]:
        """
        End the session for every tracked key.

        With ``unload_all`` each key with pending records gets one final send
        (through its owning sender, or ``send_fn`` for keys without one);
        failures are not retried. Afterwards every tracked key is jammed and
        cleared.
        """
        outcomes: list[SendOutcome] = []
        if unload_all:
            pending = []
            for key in self.keys:
                result = self._flush_key(key, send_fn)
                if result is NOT_PERFORMED:
                    continue
                pending.append(result if isinstance(result, asyncio.Future) else asyncio.wrap_future(result))
            if pending:
                outcomes = list(await asyncio.gather(*pending))
            failed = [o.key for o in outcomes if not o.success]
            if failed:
                logger.warning("LogDriver: final flush failed for %s", failed)

        keys = self.jam(True)
        self.clear()
        logger.info("LogDriver: logged out %d keys (unload_all=%s)", len(keys), unload_all)
        return outcomes
