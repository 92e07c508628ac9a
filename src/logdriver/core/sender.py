"""
Per-key loggers and the batch dispatch controller.

``Logger`` only buffers events (the simple instance). ``LogSender`` owns a
key, sends its buffer through an injected ``async`` function when the
pending threshold is reached, on a periodic timer, or on demand, and keeps
at most one send in flight per key.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from logdriver.config import PrepFn, SenderConfig
from logdriver.constants import SenderState
from logdriver.core.contracts import DispatchControllerABC, EventLoggerABC
from logdriver.core.store import LogStore, get_default_store
from logdriver.errors import ConfigurationError, KeyOwnershipError
from logdriver.events import EventRecord
from logdriver.keys import sanitize_key

logger = logging.getLogger(__name__)

SendFn = Callable[[Any], Awaitable[Any]]

# Returned by trigger() when no send was started.
NOT_PERFORMED = False


@dataclass(frozen=True)
class SendOutcome:
    """Result of one completed send attempt."""

    key: str
    success: bool
    count: int
    response: Any = None
    error: Optional[BaseException] = None


def is_async_callable(fn: Any) -> bool:
    if inspect.iscoroutinefunction(fn):
        return True
    call = getattr(fn, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)


def _is_success(response: Any) -> bool:
    if isinstance(response, Mapping):
        return response.get("success") is True
    return getattr(response, "success", None) is True


class Logger(EventLoggerABC):
    """
    Simple instance: buffers events for one key without sending on its own.

    A one-off send can still be performed with ``send_with`` (for example to
    flush a key before shutting down).
    """

    def __init__(self, key: Any = None, *, store: Optional[LogStore] = None):
        self.key = sanitize_key(key)
        self.store = store if store is not None else get_default_store()
        self.errors: list[ConfigurationError] = []
        self._sends: set = set()
        self._warned_no_loop = False
        self.store.register_keys([self.key])

    def __call__(self, event: Any = None, extra: Any = None, run: Optional[Callable[[], Any]] = None):
        return self.log(event, extra, run)

    def log(self, event: Any = None, extra: Any = None, run: Optional[Callable[[], Any]] = None) -> Optional[EventRecord]:
        """
        Log ``event`` now, then call ``run`` if given.

        Returns the stored record, or None if logging is jammed for this key.
        """
        record = self.store.log(self.key, event, extra)
        if record is not None:
            logger.debug("Logger[%s]: logged code=%r", self.key, record.code)
            self._after_append()
        if run is not None:
            run()
        return record

    def bind(self, event: Any = None, run: Optional[Callable[[], Any]] = None) -> Callable[..., Optional[EventRecord]]:
        """
        Return a callable that logs a fresh copy of ``event`` each time.

        The callable takes optional extra info (a mapping merged into the
        event, or any other value used as ``info``) and calls ``run`` after
        logging.
        """
        def logged(extra: Any = None) -> Optional[EventRecord]:
            return self.log(event, extra, run)

        return logged

    def _after_append(self) -> None:
        # the key's owning sender decides whether a batch is due
        owner = self.store.owner(self.key)
        if isinstance(owner, DispatchControllerABC):
            owner.check()

    @property
    def events(self) -> list[EventRecord]:
        return self.store.read_all(self.key)

    @property
    def pending_sends(self) -> list:
        """Sends started by this instance that have not completed yet."""
        return list(self._sends)

    @property
    def state(self) -> SenderState:
        return self.store.state(self.key)

    @property
    def is_main_instance(self) -> bool:
        return False

    @property
    def sends_automatically(self) -> bool:
        return False

    def clear(self) -> None:
        self.store.clear([self.key])

    def send_with(self, send_fn: SendFn, prep_fn: Optional[PrepFn] = None, override: bool = False):
        """Send the key's active buffer once through an ad-hoc function."""
        if not is_async_callable(send_fn):
            self.errors.append(ConfigurationError(
                f"send_with() needs an async send function, got {send_fn!r}"
            ))
            logger.warning("Logger[%s]: ignoring non-async send function %r", self.key, send_fn)
            return NOT_PERFORMED
        return self._start_send(send_fn, prep_fn if callable(prep_fn) else (lambda records: records), override)

    def _start_send(self, send_fn: SendFn, prep_fn: PrepFn, override: bool):
        loop = self._resolve_loop()
        if loop is None:
            if self._warned_no_loop:
                logger.debug("Logger[%s]: no running event loop, send not performed", self.key)
            else:
                self._warned_no_loop = True
                logger.warning("Logger[%s]: no running event loop, send not performed", self.key)
            return NOT_PERFORMED

        snapshot = self.store.begin_send(self.key, override=override)
        if snapshot is None:
            logger.debug("Logger[%s]: send rejected (sending or jammed)", self.key)
            return NOT_PERFORMED

        coro = self._dispatch(send_fn, prep_fn, snapshot)
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            pending = loop.create_task(coro)
        else:
            pending = asyncio.run_coroutine_threadsafe(coro, loop)
        self._sends.add(pending)
        pending.add_done_callback(self._sends.discard)
        return pending

    def _resolve_loop(self) -> Optional[asyncio.AbstractEventLoop]:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    async def _dispatch(self, send_fn: SendFn, prep_fn: PrepFn, snapshot: list[EventRecord]) -> SendOutcome:
        success = False
        response = None
        error: Optional[BaseException] = None
        try:
            response = await send_fn(prep_fn(snapshot))
            success = _is_success(response)
        except Exception as exc:
            error = exc
            logger.error("Logger[%s]: sending %d records failed: %s", self.key, len(snapshot), exc, exc_info=True)
        finally:
            self.store.finish_send(self.key, snapshot, success)

        if success:
            logger.info("Logger[%s]: sent batch of %d records", self.key, len(snapshot))
            self._after_success()
        elif error is None:
            logger.warning("Logger[%s]: send of %d records not acknowledged: %r", self.key, len(snapshot), response)
        return SendOutcome(key=self.key, success=success, count=len(snapshot), response=response, error=error)

    def _after_success(self) -> None:
        pass


class LogSender(Logger, DispatchControllerABC):
    """
    Main instance: owns a key and dispatches its buffer in batches.

    Sends are triggered when the active buffer reaches
    ``config.pending_send_max`` records, when the periodic timer finds
    pending records, or manually through ``send``/``trigger``. Problems with
    the configuration are collected on ``errors`` and the instance falls back
    to plain logging.

    Example:
        async with LogSender("clicks", post_events) as clicks:
            clicks.log({"code": "user_click", "info": "button 1"})
    """

    def __init__(
        self,
        key: Any = None,
        send_fn: Optional[SendFn] = None,
        config: Optional[SenderConfig] = None,
        *,
        store: Optional[LogStore] = None,
        **config_overrides: Any,
    ):
        super().__init__(key, store=store)
        self._send_fn: Optional[SendFn] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._closed = False

        if config is None:
            config = SenderConfig()
        elif not isinstance(config, SenderConfig):
            self.errors.append(ConfigurationError(
                f"config must be a SenderConfig, got {type(config).__name__}"
            ))
            config = SenderConfig()
        if config_overrides:
            try:
                config = config.with_overrides(**config_overrides)
            except ConfigurationError as exc:
                self.errors.append(exc)
        self.config = config

        self.errors.extend(config.validate())
        if send_fn is not None and not is_async_callable(send_fn):
            self.errors.append(ConfigurationError(
                f"send_fn must be an async function, got {send_fn!r}"
            ))
        elif send_fn is not None and not self.errors:
            try:
                self.store.claim(self.key, self)
                self._send_fn = send_fn
            except KeyOwnershipError as exc:
                self.errors.append(exc)

        if self.errors:
            logger.warning(
                "LogSender[%s]: falling back to simple logging: %s",
                self.key, "; ".join(str(e) for e in self.errors),
            )
        logger.info(
            f"LogSender[{self.key}]: created (sending={self._send_fn is not None}, "
            f"pending_send_max={config.pending_send_max}, interval={config.time_interval_ms}ms)"
        )

    @property
    def is_main_instance(self) -> bool:
        return True

    @property
    def sends_automatically(self) -> bool:
        return self._send_fn is not None and bool(self.config.active_sending)

    # -- dispatch -----------------------------------------------------------

    def trigger(self, send_fn: Optional[SendFn] = None, prep_fn: Optional[PrepFn] = None, override: bool = False):
        """
        Start sending the active buffer.

        Args:
            send_fn: One-off async send function; defaults to the configured one
            prep_fn: One-off batch transform; defaults to ``config.prep_fn``
            override: Send even if a send is already in flight or automatic
                      sending is disabled. Jams are still honoured.

        Returns:
            A task (or thread-safe future) resolving to ``SendOutcome``, or
            ``NOT_PERFORMED``.
        """
        if prep_fn is None or not callable(prep_fn):
            prep_fn = self.config.prep_fn
        if send_fn is not None:
            return self.send_with(send_fn, prep_fn, override)

        if self._send_fn is None:
            return NOT_PERFORMED
        if not override and not self.config.active_sending:
            return NOT_PERFORMED
        return self._start_send(self._send_fn, prep_fn, override)

    def send(self, override: bool = False):
        return self.trigger(override=override)

    def check(self):
        """Send if the active buffer has reached the pending threshold."""
        if not self.sends_automatically:
            return NOT_PERFORMED
        if len(self.store.read_active(self.key)) < self.config.pending_send_max:
            return NOT_PERFORMED
        return self.trigger()

    def _after_success(self) -> None:
        # staging may already hold a full batch
        self.check()

    def _resolve_loop(self) -> Optional[asyncio.AbstractEventLoop]:
        loop = super()._resolve_loop()
        if loop is not None:
            return loop
        if self._loop is not None and self._loop.is_running() and not self._loop.is_closed():
            return self._loop
        return None

    # -- timer lifecycle ----------------------------------------------------

    def start(self) -> None:
        """
        Bind to the running loop and start the periodic check.

        Restarting cancels the previous timer first. Must be called from
        inside a running event loop.
        """
        loop = asyncio.get_running_loop()
        self._cancel_timer()
        self._loop = loop
        if self._send_fn is None or not self.config.time_interval_ms:
            return
        self._timer_task = loop.create_task(self._run_timer())
        logger.info("LogSender[%s]: timer started (%sms)", self.key, self.config.time_interval_ms)

    async def _run_timer(self) -> None:
        interval = self.config.time_interval_ms / 1000.0
        while True:
            await asyncio.sleep(interval)
            self._on_timer()

    def _on_timer(self) -> None:
        if not self.store.read_active(self.key):
            return
        result = self.trigger()
        if result is NOT_PERFORMED:
            logger.debug("LogSender[%s]: timer check skipped", self.key)

    def _cancel_timer(self) -> Optional[asyncio.Task]:
        task = self._timer_task
        self._timer_task = None
        if task is not None and not task.done():
            task.cancel()
            logger.info("LogSender[%s]: timer stopped", self.key)
        return task

    @property
    def timer_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def close(self) -> None:
        """Stop the timer and release the key. Safe to call repeatedly."""
        self._cancel_timer()
        if self._closed:
            return
        self._closed = True
        if self._send_fn is not None:
            self.store.release(self.key, self)
            self._send_fn = None
        logger.info("LogSender[%s]: closed", self.key)

    async def aclose(self) -> None:
        task = self._timer_task
        self.close()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> "LogSender":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
