"""Keyed store, per-key loggers and the batch dispatch controller."""

from logdriver.core.buffers import BufferPair
from logdriver.core.contracts import DispatchControllerABC, EventLoggerABC
from logdriver.core.sender import (
    NOT_PERFORMED,
    Logger,
    LogSender,
    SendOutcome,
    is_async_callable,
)
from logdriver.core.store import (
    LogStore,
    coerce_capabilities,
    split_capabilities,
    get_default_store,
    reset_default_store,
)

__all__ = [
    "BufferPair",
    "DispatchControllerABC",
    "EventLoggerABC",
    "NOT_PERFORMED",
    "Logger",
    "LogSender",
    "SendOutcome",
    "is_async_callable",
    "LogStore",
    "coerce_capabilities",
    "split_capabilities",
    "get_default_store",
    "reset_default_store",
]
