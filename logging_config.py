# logging_config.py
#
# Description: Formatters and handler wiring for the console sink of the
#              structured logger. Entries travel on a stdlib LogRecord as the
#              ``entry`` attribute and are rendered either as a single text
#              line or as a single-line JSON object.
#

# --------------------------------------------------------------------------- #
# imports
# --------------------------------------------------------------------------- #
from __future__ import annotations

import json
import logging
import sys
import traceback
from typing import IO, TYPE_CHECKING, Any, Dict, Optional

import typer
from pythonjsonlogger.json import JsonFormatter

if TYPE_CHECKING:
    from logger import LogEntry  # pragma: no cover

# --------------------------------------------------------------------------- #
# constants
# --------------------------------------------------------------------------- #
LEVEL_COLORS: Dict[str, str] = {
    "DEBUG": typer.colors.CYAN,
    "INFO": typer.colors.GREEN,
    "WARN": typer.colors.YELLOW,
    "ERROR": typer.colors.RED,
}

# --------------------------------------------------------------------------- #
# helpers
# --------------------------------------------------------------------------- #
def render_context(context: Dict[str, Any]) -> str:
    """Serialise a context mapping, falling back to repr for exotic values."""
    try:
        return json.dumps(context, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        # circular references or keys json cannot handle
        return repr(context)


def render_stack(error: BaseException) -> Optional[str]:
    if error.__traceback__ is None:
        return None
    return "".join(
        traceback.format_exception(type(error), error, error.__traceback__)
    ).rstrip()

# --------------------------------------------------------------------------- #
# formatters
# --------------------------------------------------------------------------- #
class ConsoleFormatter(logging.Formatter):
    """
    Render a log entry as ``[<timestamp>] <LEVEL>: <message>``.

    A non-empty context is appended as `` | Context: <json>`` and a captured
    fault adds an ``Error:`` line followed by a ``Stack:`` line when a
    traceback is available.
    """

    def __init__(self, colorize: bool = False) -> None:
        super().__init__()
        self.colorize = colorize

    def format(self, record: logging.LogRecord) -> str:
        entry: Optional["LogEntry"] = getattr(record, "entry", None)
        if entry is None:
            return super().format(record)

        level_name = entry.level.name
        head = f"[{entry.timestamp}] {level_name}"
        if self.colorize:
            head = typer.style(head, fg=LEVEL_COLORS.get(level_name))
        output = f"{head}: {entry.message}"

        if entry.context:
            output += f" | Context: {render_context(entry.context)}"

        if entry.error is not None:
            output += f"\n  Error: {entry.error}"
            stack = render_stack(entry.error)
            if stack:
                output += f"\n  Stack: {stack}"
        return output


class JSONFormatter(JsonFormatter):
    """
    Emit entries as single-line JSON.
    Includes timestamp, level, message, context and error details.
    """

    def add_fields(
        self,
        log_data: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_data, record, message_dict)
        entry: Optional["LogEntry"] = log_data.pop("entry", None)
        if entry is None:
            return
        log_data["timestamp"] = entry.timestamp
        log_data["level"] = entry.level.name
        log_data["message"] = entry.message
        if entry.context:
            log_data["context"] = entry.context
        if entry.error is not None:
            log_data["error"] = {
                "message": str(entry.error),
                "type": type(entry.error).__name__,
                "stack": render_stack(entry.error),
            }

# --------------------------------------------------------------------------- #
# handler wiring
# --------------------------------------------------------------------------- #
def build_console_handler(
    stream: Optional[IO[str]] = None,
    colorize: bool = False,
    json_output: bool = False,
) -> logging.StreamHandler:
    """
    Configures and returns a stream handler for the console sink.
    """
    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ConsoleFormatter(colorize=colorize))
    return handler
