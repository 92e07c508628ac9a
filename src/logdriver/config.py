"""
Configuration for log senders and event context.

Defaults mirror the documented behaviour: send automatically, every 5 pending
records or every 15 seconds, with an identity prep function. Values can be
overridden per controller or picked up from ``LOGDRIVER_*`` environment
variables.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, Optional

from logdriver.constants import DEFAULT_PENDING_SEND_MAX, DEFAULT_TIME_INTERVAL_MS
from logdriver.errors import ConfigurationError

logger = logging.getLogger(__name__)

PrepFn = Callable[[list], Any]

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def identity(records: list) -> Any:
    return records


@dataclass(frozen=True)
class SenderConfig:
    """Per-controller dispatch configuration."""

    active_sending: bool = True
    pending_send_max: int = DEFAULT_PENDING_SEND_MAX
    time_interval_ms: int = DEFAULT_TIME_INTERVAL_MS
    prep_fn: PrepFn = field(default=identity)

    @classmethod
    def from_env(cls, prefix: str = "LOGDRIVER_", **overrides: Any) -> "SenderConfig":
        """
        Build a config from environment variables.

        Recognised variables (with the default prefix):
            LOGDRIVER_ACTIVE_SENDING, LOGDRIVER_PENDING_SEND_MAX,
            LOGDRIVER_TIME_INTERVAL_MS

        Explicit keyword overrides win over the environment. Unparseable
        values and unknown option names are logged and ignored.
        """
        values: dict[str, Any] = {}

        raw = os.getenv(f"{prefix}ACTIVE_SENDING")
        if raw is not None:
            lowered = raw.strip().lower()
            if lowered in _TRUE_VALUES:
                values["active_sending"] = True
            elif lowered in _FALSE_VALUES:
                values["active_sending"] = False
            else:
                logger.warning("Ignoring %sACTIVE_SENDING=%r (not a boolean)", prefix, raw)

        for name, attr in (("PENDING_SEND_MAX", "pending_send_max"), ("TIME_INTERVAL_MS", "time_interval_ms")):
            raw = os.getenv(f"{prefix}{name}")
            if raw is None:
                continue
            try:
                values[attr] = int(raw)
            except ValueError:
                logger.warning("Ignoring %s%s=%r (not an integer)", prefix, name, raw)

        known = {f.name for f in fields(cls)}
        for name in overrides:
            if name not in known:
                logger.warning("Ignoring unknown sender option %r", name)
        values.update({name: value for name, value in overrides.items() if name in known})
        return cls(**values)

    def with_overrides(self, **changes: Any) -> "SenderConfig":
        """Copy with some options replaced; unknown option names are a ConfigurationError."""
        unknown = sorted(set(changes) - {f.name for f in fields(self)})
        if unknown:
            raise ConfigurationError(f"Unknown sender option(s): {', '.join(unknown)}")
        return replace(self, **changes)

    def validate(self) -> list[ConfigurationError]:
        """Return every problem with this config; never raises."""
        problems: list[ConfigurationError] = []
        if isinstance(self.pending_send_max, bool) or not isinstance(self.pending_send_max, int) or self.pending_send_max < 1:
            problems.append(ConfigurationError(
                f"pending_send_max must be a positive integer, got {self.pending_send_max!r}"
            ))
        if isinstance(self.time_interval_ms, bool) or not isinstance(self.time_interval_ms, (int, float)) or self.time_interval_ms < 0:
            problems.append(ConfigurationError(
                f"time_interval_ms must be a non-negative number, got {self.time_interval_ms!r}"
            ))
        if not callable(self.prep_fn):
            problems.append(ConfigurationError(
                f"prep_fn must be callable, got {type(self.prep_fn).__name__}"
            ))
        return problems


@dataclass(frozen=True)
class EventContext:
    """Where an event was recorded; copied into every record's metadata."""

    path: Optional[str] = None
    href: Optional[str] = None
    user_id: Optional[Any] = None

    @classmethod
    def default(cls) -> "EventContext":
        return cls(path=sys.argv[0] if sys.argv and sys.argv[0] else None)


ContextProvider = Callable[[], EventContext]
