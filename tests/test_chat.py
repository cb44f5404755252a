"""
Unit tests for the interactive chat loop (chat.py).

The gateway is replaced with plain functions so the loop, the command
handlers and the failure path can be checked without a model.
"""
import builtins

import pytest

from chat import (
    COMMANDS,
    ChatApplication,
    handle_clear,
    handle_help,
    handle_history,
)
from logger import LogLevel
from prompts import ROLE_ASSISTANT, ROLE_USER


def feed_input(monkeypatch, lines):
    """Make input() return ``lines`` one by one, then raise EOFError."""
    remaining = list(lines)

    def fake_input(prompt=""):
        if not remaining:
            raise EOFError
        return remaining.pop(0)

    monkeypatch.setattr(builtins, "input", fake_input)


def failing_ask(message):
    raise ConnectionError("model offline")


@pytest.fixture
def app(quiet_logger, error_handler):
    return ChatApplication(lambda message: f"echo: {message}", quiet_logger, error_handler)


class TestCommandHandlers:
    def test_handle_help_lists_commands(self, capsys):
        handle_help([])
        output = capsys.readouterr().out
        for cmd, (_, description) in COMMANDS.items():
            assert cmd in output
            assert description in output
        assert "exit" in output

    def test_handle_history_empty(self, capsys):
        handle_history([])
        assert "No messages in history" in capsys.readouterr().out

    def test_handle_history_with_messages(self, capsys):
        handle_history([
            {"role": ROLE_USER, "content": "Hello"},
            {"role": ROLE_ASSISTANT, "content": "Hi there!"},
        ])
        output = capsys.readouterr().out
        assert "You: Hello" in output
        assert "AI: Hi there!" in output

    def test_handle_clear(self, capsys):
        history = [{"role": ROLE_USER, "content": "This will be cleared."}]
        handle_clear(history)
        assert history == []
        assert "Chat history has been cleared" in capsys.readouterr().out


class TestChatApplication:
    def test_initial_state(self, app, quiet_logger):
        assert app.history == []
        assert app.message_count == 0
        assert quiet_logger.get_log_buffer()[0].message == "Chat application initialized."

    def test_process_message_success(self, app, capsys):
        app.process_message("Hello")
        assert app.history == [
            {"role": ROLE_USER, "content": "Hello"},
            {"role": ROLE_ASSISTANT, "content": "echo: Hello"},
        ]
        assert app.message_count == 1
        assert "AI: echo: Hello" in capsys.readouterr().out

    def test_process_message_failure_keeps_loop_state(self, quiet_logger, error_handler, capsys):
        """A failed request prints an error and drops the unanswered turn."""
        app = ChatApplication(failing_ask, quiet_logger, error_handler)
        app.process_message("Hello")
        assert app.history == []
        output = capsys.readouterr().out
        assert "[ERROR] Could not get a response from the LLM. model offline" in output
        errors = [e for e in quiet_logger.get_log_buffer() if e.level is LogLevel.ERROR]
        assert [e.message for e in errors] == ["Chat: failure"]
        assert errors[0].context == {"args": ["Hello"]}

    @pytest.mark.parametrize("word", ["exit", "QUIT", " bye ", ":exit"])
    def test_exit_words_stop_the_loop(self, app, word):
        assert app.handle_input(word) is False

    def test_empty_input_is_ignored(self, app, capsys):
        assert app.handle_input("   ") is True
        assert app.history == []
        assert "Please type a message." in capsys.readouterr().out

    @pytest.mark.parametrize("alias", ["help", "?", ":help", ":HELP"])
    def test_help_aliases(self, app, capsys, alias):
        assert app.handle_input(alias) is True
        assert "Displays this help message." in capsys.readouterr().out
        assert app.message_count == 0

    def test_history_and_clear_commands(self, app, capsys):
        app.handle_input("first")
        app.handle_input(":history")
        assert "You: first" in capsys.readouterr().out
        app.handle_input(":clear")
        assert app.history == []

    def test_run_until_exit(self, monkeypatch, app, quiet_logger, capsys):
        feed_input(monkeypatch, ["hi", "", "bye", "never read"])
        app.run()
        output = capsys.readouterr().out
        assert "AI: echo: hi" in output
        assert "Goodbye!" in output
        end = quiet_logger.get_log_buffer()[-1]
        assert end.message == "Chat ended by user"
        assert end.context == {"messageCount": 1}

    def test_run_survives_failures_and_eof(self, monkeypatch, quiet_logger, error_handler, capsys):
        """Errors do not end the loop; end of input does."""
        app = ChatApplication(failing_ask, quiet_logger, error_handler)
        feed_input(monkeypatch, ["one", "two"])
        app.run()
        output = capsys.readouterr().out
        assert output.count("[ERROR]") == 2
        assert "Goodbye!" in output


class TestCheckConnection:
    def test_success(self, app, capsys):
        assert app.check_connection() is True
        assert "Connected to Ollama." in capsys.readouterr().out

    def test_failure(self, quiet_logger, error_handler, capsys):
        app = ChatApplication(failing_ask, quiet_logger, error_handler)
        assert app.check_connection() is False
        output = capsys.readouterr().out
        assert "Could not reach Ollama." in output
        assert "ollama serve" in output
        assert quiet_logger.get_log_buffer()[-1].message == "Connection check failed"
