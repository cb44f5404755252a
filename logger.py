# logger.py
#
# Description: A leveled, structured, buffered logger. Every emitted event
#              becomes an immutable LogEntry kept in a bounded in-memory
#              buffer and dispatched to the enabled sinks (console, file).
#

"""
Structured logger used by every surface of the chat client.

Entries below the configured level are dropped. Emitted entries are appended
to a buffer that holds at most ``MAX_BUFFER_SIZE`` entries: once it grows past
that mark it is cut down to the newest ``TRIMMED_BUFFER_SIZE`` entries in one
step. The buffer is unsynchronised and meant for a single thread or a
cooperative event loop.
"""

# --------------------------------------------------------------------------- #
# imports
# --------------------------------------------------------------------------- #
from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import IntEnum
from pathlib import Path
from typing import IO, Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

from logging_config import build_console_handler

# --------------------------------------------------------------------------- #
# constants
# --------------------------------------------------------------------------- #
MAX_BUFFER_SIZE = 1000
TRIMMED_BUFFER_SIZE = 500

Context = Dict[str, Any]

# --------------------------------------------------------------------------- #
# data model
# --------------------------------------------------------------------------- #
class LogLevel(IntEnum):
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3

    @classmethod
    def parse(cls, value: Union["LogLevel", int, str]) -> "LogLevel":
        """Accept a LogLevel, an ordinal, or a level name such as ``"warn"``."""
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid log level: {value!r}")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            text = value.strip().upper()
            if text.isdigit():
                return cls(int(text))
            if text == "WARNING":
                return cls.WARN
            try:
                return cls[text]
            except KeyError:
                raise ValueError(f"Invalid log level: {value!r}") from None
        raise ValueError(f"Invalid log level: {value!r}")


_STDLIB_LEVELS: Dict[LogLevel, int] = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class LogEntry(BaseModel):
    """One emitted event. Built by ``Logger.log`` only and never modified."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    timestamp: str
    level: LogLevel
    message: str
    context: Optional[Dict[Any, Any]] = None
    error: Optional[BaseException] = None


class LoggerConfig(BaseModel):
    """Effective logger settings: hard defaults merged with caller overrides."""

    model_config = ConfigDict(validate_assignment=True)

    level: LogLevel = LogLevel.DEBUG
    enable_console: bool = True
    enable_file: bool = False
    log_file: Path = Path("logs/app.log")
    # rotation knobs reserved for the file sink
    max_file_size: int = 10 * 1024 * 1024
    max_files: int = 5
    colorize: bool = False
    json_output: bool = False

    @field_validator("level", mode="before")
    @classmethod
    def _coerce_level(cls, value: Any) -> LogLevel:
        return LogLevel.parse(value)

# --------------------------------------------------------------------------- #
# logger
# --------------------------------------------------------------------------- #
class Logger:
    """Filter, format, and dispatch timestamped structured events."""

    def __init__(
        self,
        config: Union[LoggerConfig, Mapping[str, Any], None] = None,
        stream: Optional[IO[str]] = None,
    ) -> None:
        if isinstance(config, LoggerConfig):
            self._config = config.model_copy()
        else:
            self._config = LoggerConfig(**dict(config or {}))
        self._buffer: List[LogEntry] = []

        # private stdlib logger: not registered globally, never propagates
        self._console = logging.Logger(f"local_chat.console.{id(self):x}")
        self._console.setLevel(logging.DEBUG)
        self._console.propagate = False
        self._console.addHandler(
            build_console_handler(
                stream=stream,
                colorize=self._config.colorize,
                json_output=self._config.json_output,
            )
        )

    @property
    def config(self) -> LoggerConfig:
        return self._config.model_copy()

    # --- level shortcuts ---------------------------------------------------
    def debug(self, message: str, context: Optional[Context] = None) -> None:
        self.log(LogLevel.DEBUG, message, context)

    def info(self, message: str, context: Optional[Context] = None) -> None:
        self.log(LogLevel.INFO, message, context)

    def warn(self, message: str, context: Optional[Context] = None) -> None:
        self.log(LogLevel.WARN, message, context)

    def error(
        self,
        message: str,
        error: Optional[BaseException] = None,
        context: Optional[Context] = None,
    ) -> None:
        self.log(LogLevel.ERROR, message, context, error)

    # --- core --------------------------------------------------------------
    def log(
        self,
        level: LogLevel,
        message: str,
        context: Optional[Context] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        """
        Record an event if ``level`` reaches the configured threshold.

        Args:
            level: severity of the event.
            message: human-readable text.
            context: optional structured details.
            error: optional captured fault, rendered with its traceback.
        """
        level = LogLevel.parse(level)
        if level < self._config.level:
            return
        if error is not None and not isinstance(error, BaseException):
            # rejected values that are not exceptions travel in the context
            context = {**(context or {}), "error": repr(error)}
            error = None

        entry = LogEntry(
            timestamp=_now_iso(),
            level=level,
            message=message,
            context=dict(context) if context else None,
            error=error,
        )
        self._buffer.append(entry)

        if self._config.enable_console:
            self._output_to_console(entry)
        if self._config.enable_file:
            self._output_to_file(entry)

        if len(self._buffer) > MAX_BUFFER_SIZE:
            self._buffer = self._buffer[-TRIMMED_BUFFER_SIZE:]

    def _output_to_console(self, entry: LogEntry) -> None:
        # handler errors are reported by logging.Handler.handleError
        self._console.log(_STDLIB_LEVELS[entry.level], entry.message, extra={"entry": entry})

    def _output_to_file(self, entry: LogEntry) -> None:
        """
        Reserved hook for a durable, size-rotating file sink.

        Entries are accepted and dropped. A real sink writes to
        ``config.log_file`` and rotates at ``max_file_size`` keeping
        ``max_files`` generations.
        """

    # --- introspection -----------------------------------------------------
    def get_log_buffer(self) -> List[LogEntry]:
        """Return a snapshot of the buffered entries, oldest first."""
        return list(self._buffer)

    def set_log_level(self, level: Union[LogLevel, int, str]) -> None:
        self._config.level = LogLevel.parse(level)

    def clear_buffer(self) -> None:
        self._buffer = []


def _now_iso() -> str:
    stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")
