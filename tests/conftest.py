import io

import pytest

from error_handler import ErrorHandler
from logger import Logger, LogLevel


@pytest.fixture
def stream():
    """In-memory console sink."""
    return io.StringIO()


@pytest.fixture
def logger(stream):
    """Logger at DEBUG writing plain text into ``stream``."""
    return Logger({"level": LogLevel.DEBUG}, stream=stream)


@pytest.fixture
def quiet_logger():
    """Logger that only buffers entries."""
    return Logger({"level": LogLevel.DEBUG, "enable_console": False})


@pytest.fixture
def exit_calls():
    return []


@pytest.fixture
def error_handler(quiet_logger, exit_calls):
    """ErrorHandler whose exit function records its status instead of exiting."""
    return ErrorHandler(quiet_logger, exit_func=exit_calls.append)
