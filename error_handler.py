# error_handler.py
#
# Description: Converts faults raised by wrapped operations into logged
#              failure results and installs last-resort process handlers
#              (uncaught exceptions, unhandled asyncio errors, SIGINT and
#              SIGTERM).
#

# --------------------------------------------------------------------------- #
# imports
# --------------------------------------------------------------------------- #
from __future__ import annotations

import asyncio
import functools
import signal
import sys
from types import TracebackType
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    NamedTuple,
    Optional,
    Type,
    TypeVar,
    Union,
)

from logger import Logger

T = TypeVar("T")

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)

# --------------------------------------------------------------------------- #
# result types
# --------------------------------------------------------------------------- #
class Success(NamedTuple, Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


class Failure(NamedTuple):
    error: Exception

    @property
    def ok(self) -> bool:
        return False


Result = Union[Success[T], Failure]

# --------------------------------------------------------------------------- #
# error handler
# --------------------------------------------------------------------------- #
class ErrorHandler:
    """Wrap operations so that faults become log entries and failure results."""

    def __init__(
        self,
        logger: Logger,
        exit_func: Callable[[int], Any] = sys.exit,
    ) -> None:
        self.logger = logger
        self.is_setup = False
        self._exit = exit_func
        self._on_shutdown: Optional[Callable[[], Any]] = None

    # --- wrappers ----------------------------------------------------------
    def capture_sync(
        self, fn: Callable[..., T], label: str
    ) -> Callable[..., Result[T]]:
        """
        Wrap ``fn`` so that it returns ``Success(value)`` or ``Failure(error)``.

        Success is logged at DEBUG as ``"<label>: success"``, failure at ERROR
        as ``"<label>: failure"``; both carry the call arguments as context.
        """

        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Result[T]:
            try:
                result = fn(*args, **kwargs)
            except Exception as exc:
                self.logger.error(f"{label}: failure", exc, _call_context(args, kwargs))
                return Failure(exc)
            self.logger.debug(f"{label}: success", _call_context(args, kwargs))
            return Success(result)

        return wrapper

    def capture_async(
        self, fn: Callable[..., Awaitable[T]], label: str
    ) -> Callable[..., Awaitable[Result[T]]]:
        """Coroutine counterpart of ``capture_sync``; logs once ``fn`` settles."""

        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Result[T]:
            try:
                result = await fn(*args, **kwargs)
            except Exception as exc:
                self.logger.error(f"{label}: failure", exc, _call_context(args, kwargs))
                return Failure(exc)
            self.logger.debug(f"{label}: success", _call_context(args, kwargs))
            return Success(result)

        return wrapper

    def wrap_sync(
        self, fn: Callable[..., T], label: str
    ) -> Callable[..., Optional[T]]:
        """Like ``capture_sync`` but returns the value, or ``None`` on failure."""
        captured = self.capture_sync(fn, label)

        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Optional[T]:
            outcome = captured(*args, **kwargs)
            return outcome.value if outcome.ok else None

        return wrapper

    def wrap_async(
        self, fn: Callable[..., Awaitable[T]], label: str
    ) -> Callable[..., Awaitable[Optional[T]]]:
        captured = self.capture_async(fn, label)

        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Optional[T]:
            outcome = await captured(*args, **kwargs)
            return outcome.value if outcome.ok else None

        return wrapper

    # --- process-wide handlers ---------------------------------------------
    def setup_global_handlers(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        on_shutdown: Optional[Callable[[], Any]] = None,
    ) -> None:
        """
        Install the last-resort handlers once per handler instance.

        Args:
            loop: event loop whose unhandled errors and signals are routed
                here; defaults to the running loop, if any.
            on_shutdown: called on SIGINT/SIGTERM instead of exiting, so a
                server can drain and close on its own.
        """
        if self.is_setup:
            return
        self.is_setup = True
        self._on_shutdown = on_shutdown

        sys.excepthook = self._handle_uncaught

        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
        if loop is not None:
            loop.set_exception_handler(self._handle_unhandled_async)

        for sig in SHUTDOWN_SIGNALS:
            self._install_signal(sig, loop)

    def _install_signal(
        self, sig: signal.Signals, loop: Optional[asyncio.AbstractEventLoop]
    ) -> None:
        if loop is not None:
            try:
                loop.add_signal_handler(sig, self._handle_signal, sig)
                return
            except (NotImplementedError, RuntimeError):
                # no loop signal support on this platform
                pass
        signal.signal(sig, lambda signum, _frame: self._handle_signal(signum))

    def _handle_uncaught(
        self,
        exc_type: Type[BaseException],
        exc: BaseException,
        tb: Optional[TracebackType],
    ) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc, tb)
            return
        self.logger.error("Uncaught exception", exc.with_traceback(tb))
        # the interpreter exits with status 1 once this hook returns

    def _handle_unhandled_async(
        self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]
    ) -> None:
        pending = context.get("future") or context.get("task")
        exc = context.get("exception")
        if pending is None and isinstance(exc, Exception):
            # a plain callback raised; nothing is awaiting it
            self.logger.error(
                "Uncaught exception", exc, {"message": context.get("message", "")}
            )
            self._exit(1)
            return
        self.logger.error(
            "Unhandled asynchronous error",
            exc,
            {
                "message": context.get("message", ""),
                "future": repr(pending) if pending is not None else None,
            },
        )

    def _handle_signal(self, signum: int) -> None:
        name = signal.Signals(signum).name
        self.logger.info(f"Application shutting down ({name})")
        if self._on_shutdown is not None:
            self._on_shutdown()
        else:
            self._exit(0)


def _call_context(args: tuple, kwargs: Dict[str, Any]) -> Dict[str, Any]:
    context: Dict[str, Any] = {"args": list(args)}
    if kwargs:
        context["kwargs"] = dict(kwargs)
    return context
