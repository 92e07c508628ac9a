"""
logdriver: collect events under named keys and send them in batches.

Events logged from anywhere are normalized, buffered per key, and handed to
an injected ``async`` send function once enough have accumulated, on a
timer, or on demand. Keys can be paused ("jammed") and resumed ("driven")
independently.

Typical use::

    async def post_events(records):
        ...
        return {"success": True}

    async with LogSender("clicks", post_events, pending_send_max=10) as clicks:
        clicks.log({"code": "user_click", "info": "User clicked on X"})

    Logger("clicks").log("page_view")
    LogDriver().jam(["clicks"], ["sending"])
"""

from typing import Any, Optional

from logdriver.config import EventContext, SenderConfig
from logdriver.constants import (
    DEFAULT_KEY,
    MAX_KEY_LENGTH,
    Capability,
    SenderState,
)
from logdriver.core import (
    NOT_PERFORMED,
    LogSender,
    LogStore,
    Logger,
    SendOutcome,
    get_default_store,
    reset_default_store,
)
from logdriver.driver import DriverStatus, LogDriver
from logdriver.errors import (
    ConfigurationError,
    KeyOwnershipError,
    LogDriverError,
)
from logdriver.events import EventRecord, normalize_event
from logdriver.keys import sanitize_key

__all__ = [
    'Capability',
    'ConfigurationError',
    'DEFAULT_KEY',
    'DriverStatus',
    'EventContext',
    'EventRecord',
    'KeyOwnershipError',
    'LogDriver',
    'LogDriverError',
    'LogSender',
    'LogStore',
    'Logger',
    'MAX_KEY_LENGTH',
    'NOT_PERFORMED',
    'SendOutcome',
    'SenderConfig',
    'SenderState',
    'get_default_store',
    'log',
    'normalize_event',
    'reset_default_store',
    'sanitize_key',
]


def log(key: Any = None, event: Any = None, extra: Any = None) -> Optional[EventRecord]:
    """Log one event under ``key`` on the process-wide store."""
    return Logger(key).log(event, extra)
