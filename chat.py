# chat.py
#
# Description: an interactive terminal chat loop for a local Ollama LLM.

"""
This module provides a simple, stateful command-line chat interface.

It keeps the conversation in memory for display and allows special
commands for interacting with the session (e.g., :help, :history, exit).
Every message goes to the chat gateway through the ErrorHandler, so a
failed request prints an error line and the loop keeps running.
"""

# --------------------------------------------------------------------------- #
# imports
# --------------------------------------------------------------------------- #
from __future__ import annotations  # allow postponed evaluation of annotations
from typing import Callable, Dict, Tuple  # for type definitions

import typer

from error_handler import ErrorHandler
from logger import Logger
from prompts import ROLE_ASSISTANT, ROLE_USER, History

# --------------------------------------------------------------------------- #
# constants and type definitions
# --------------------------------------------------------------------------- #
EXIT_WORDS = {"exit", "quit", "bye", ":exit"}
COMMAND_ALIASES = {"help": ":help", "?": ":help"}
CONNECTION_CHECK_MESSAGE = "Hello"
RULE = "━" * 50

CommandHandler = Callable[[History], None]  # alias for command handler signature

# --------------------------------------------------------------------------- #
# command handlers
# --------------------------------------------------------------------------- #
def handle_help(history: History) -> None:
    """Display available commands and their descriptions."""
    typer.secho("\nHelp:", fg=typer.colors.CYAN)
    typer.echo("  Type any message to chat with the AI.")
    for cmd, (_, description) in COMMANDS.items():
        typer.echo(f"  {cmd:<10} - {description}")
    typer.echo(f"  {'exit':<10} - Ends the chat (also: quit, bye, :exit).\n")

def handle_history(history: History) -> None:
    """Show the conversation history, if any."""
    if not history:
        typer.echo("No messages in history yet.")
        return

    typer.echo("\n--- Chat History ---")
    for turn in history:
        speaker = "You" if turn["role"] == ROLE_USER else "AI"
        typer.echo(f"{speaker}: {turn['content']}")
    typer.echo("--- End History ---\n")

def handle_clear(history: History) -> None:
    """Clear the current chat history."""
    history.clear()
    typer.echo("Chat history has been cleared.")

# --------------------------------------------------------------------------- #
# command routing table
# --------------------------------------------------------------------------- #
COMMANDS: Dict[str, Tuple[CommandHandler, str]] = {
    ":help":    (handle_help,    "Displays this help message."),
    ":history": (handle_history, "Displays the conversation history."),
    ":clear":   (handle_clear,   "Clears the current chat history."),
}

# --------------------------------------------------------------------------- #
# main chat application class
# --------------------------------------------------------------------------- #
class ChatApplication:
    """Encapsulates the state and logic of the chat loop."""

    def __init__(
        self,
        ask: Callable[[str], str],
        logger: Logger,
        error_handler: ErrorHandler,
    ) -> None:
        self.history: History = []
        self.message_count = 0
        self.logger = logger
        self._ask = error_handler.capture_sync(ask, "Chat")
        logger.info("Chat application initialized.")

    def check_connection(self) -> bool:
        """Send a greeting to the model and report whether it answered."""
        typer.secho("Checking the Ollama connection...", fg=typer.colors.BLUE)
        outcome = self._ask(CONNECTION_CHECK_MESSAGE)
        if outcome.ok:
            typer.secho("Connected to Ollama.", fg=typer.colors.GREEN)
            self.logger.info("Connection check succeeded")
            return True

        typer.secho("Could not reach Ollama.", fg=typer.colors.RED)
        typer.secho("Make sure the Ollama server is running.", fg=typer.colors.RED)
        typer.secho("Start it with: ollama serve", fg=typer.colors.BRIGHT_BLACK)
        self.logger.error("Connection check failed", outcome.error)
        return False

    def run(self) -> None:
        """Start and manage the main chat loop."""
        typer.secho("Local LLM Chatbot", fg=typer.colors.BLUE, bold=True)
        typer.secho(RULE, fg=typer.colors.BRIGHT_BLACK)
        typer.secho("Type ':help' for commands, or 'exit' to quit.", fg=typer.colors.YELLOW)
        typer.secho(RULE, fg=typer.colors.BRIGHT_BLACK)
        self.logger.info("Chat loop started")

        while True:
            try:
                user_input = input("You: ")
            except (KeyboardInterrupt, EOFError):
                typer.echo()
                break
            if not self.handle_input(user_input):
                break

        self.logger.info("Chat ended by user", {"messageCount": self.message_count})
        typer.secho("Goodbye!", fg=typer.colors.YELLOW)

    def handle_input(self, raw: str) -> bool:
        """
        Route one line of input. Returns False when the user asked to leave.
        """
        text = raw.strip()
        command = text.lower()
        if command in EXIT_WORDS:
            return False
        if not text:
            self.logger.debug("Empty input ignored")
            typer.secho("Please type a message.", fg=typer.colors.BRIGHT_BLACK)
            return True

        entry = COMMANDS.get(COMMAND_ALIASES.get(command, command))
        if entry:
            handler_fn, _ = entry
            handler_fn(self.history)
        else:
            self.process_message(text)
        return True

    def process_message(self, text: str) -> None:
        """
        Process a user message: send to LLM, handle response, update history.

        Args:
            text: the user's message content.
        """
        self.history.append({"role": ROLE_USER, "content": text})
        self.message_count += 1
        self.logger.debug(
            "Processing user message",
            {"messageCount": self.message_count, "inputLength": len(text)},
        )

        typer.secho("Thinking...", fg=typer.colors.BRIGHT_BLACK)
        outcome = self._ask(text)
        if not outcome.ok:
            # drop the unanswered turn so the history stays consistent
            self.history.pop()
            typer.secho(
                f"[ERROR] Could not get a response from the LLM. {outcome.error}",
                fg=typer.colors.RED,
            )
            typer.secho("Please try again.", fg=typer.colors.BRIGHT_BLACK)
            return

        reply = outcome.value
        typer.echo(typer.style("AI: ", fg=typer.colors.GREEN) + reply + "\n")
        self.history.append({"role": ROLE_ASSISTANT, "content": reply})
        self.logger.debug(
            "Message exchange completed",
            {"messageCount": self.message_count, "responseLength": len(reply)},
        )
