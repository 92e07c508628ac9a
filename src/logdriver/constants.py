"""Shared constants and enums for the log driver."""

from enum import Enum


DEFAULT_KEY = "default"
MAX_KEY_LENGTH = 1024
UNKNOWN_CODE = "unknown"

DEFAULT_PENDING_SEND_MAX = 5
DEFAULT_TIME_INTERVAL_MS = 15000


class SenderState(Enum):
    """Dispatch state of a single log key."""
    IDLE = "idle"
    SENDING = "sending"


class Capability(Enum):
    """What a jam suppresses for a key."""
    LOGGING = "logging"
    SENDING = "sending"


ALL_CAPABILITIES = frozenset(Capability)
