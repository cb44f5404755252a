# main.py
#
# Description: Command-line entry point for the local chat client. It is the
#              composition root: it builds the logger, the error handler and
#              the chat gateway from settings, then starts one of the three
#              surfaces (one-shot ask, interactive chat, HTTP playground).
#

# --------------------------------------------------------------------------- #
# imports
# --------------------------------------------------------------------------- #
from __future__ import annotations

import asyncio
import sys
from typing import Optional, Tuple, Union

import typer

from chat import ChatApplication
from config import AppConfig, settings
from error_handler import ErrorHandler
from llm_client import ChatRequestError, OfflineChatClient, OllamaChatClient
from logger import Logger
from playground import PlaygroundRouter, run_playground

ChatClient = Union[OllamaChatClient, OfflineChatClient]

app = typer.Typer(
    help="Chat with a language model served by a local Ollama instance.",
    add_completion=False,
)

OFFLINE_OPTION = typer.Option(
    False, "--offline", help="Answer locally without contacting Ollama."
)

# --------------------------------------------------------------------------- #
# composition
# --------------------------------------------------------------------------- #
def build_logger(config: AppConfig) -> Logger:
    overrides = config.logger_overrides()
    overrides["colorize"] = sys.stdout.isatty() and not config.log_json
    return Logger(overrides)


def build_client(config: AppConfig, logger: Logger, offline: bool) -> ChatClient:
    if offline:
        return OfflineChatClient(logger)
    return OllamaChatClient(config, logger)


def bootstrap(install_handlers: bool = True) -> Tuple[Logger, ErrorHandler]:
    """Create the process-wide logger and error handler."""
    logger = build_logger(settings)
    error_handler = ErrorHandler(logger)
    if install_handlers:
        error_handler.setup_global_handlers()
    return logger, error_handler

# --------------------------------------------------------------------------- #
# commands
# --------------------------------------------------------------------------- #
@app.command()
def ask(
    prompt: str = typer.Argument(..., help="Question to send to the model."),
    offline: bool = OFFLINE_OPTION,
) -> None:
    """
    Send a single question to the model and print the answer.
    """
    logger, _ = bootstrap()
    user_prompt = prompt.strip()
    if not user_prompt:
        logger.error("No prompt given; aborting.")
        raise typer.Exit(code=1)

    client = build_client(settings, logger, offline)
    try:
        reply = client.complete(user_prompt)
    except (ValueError, ChatRequestError) as e:
        logger.error("A client-side error occurred", e)
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.echo("\nModel says:\n")
    typer.echo(reply)


@app.command("chat")
def chat_command(
    offline: bool = OFFLINE_OPTION,
    skip_check: bool = typer.Option(
        False, "--skip-check", help="Do not send a greeting to test the connection first."
    ),
) -> None:
    """
    Start the interactive terminal chat.
    """
    logger, error_handler = bootstrap()
    logger.info(
        "CLI application started",
        {"baseURL": settings.ollama_base_url, "model": settings.ollama_model, "offline": offline},
    )
    client = build_client(settings, logger, offline)
    application = ChatApplication(client.complete, logger, error_handler)
    if not skip_check and not application.check_connection():
        raise typer.Exit(code=1)
    application.run()


@app.command()
def playground(
    host: Optional[str] = typer.Option(None, help="Bind address (default from settings)."),
    port: Optional[int] = typer.Option(None, help="Port (default from settings)."),
    offline: bool = OFFLINE_OPTION,
) -> None:
    """
    Serve the browser playground and its JSON chat endpoint.
    """
    logger, error_handler = bootstrap(install_handlers=False)
    client = build_client(settings, logger, offline)
    router = PlaygroundRouter(
        client.chat, logger, error_handler, max_body_bytes=settings.max_body_bytes
    )

    async def serve() -> None:
        stop_event = asyncio.Event()
        error_handler.setup_global_handlers(
            loop=asyncio.get_running_loop(), on_shutdown=stop_event.set
        )
        await run_playground(
            router,
            host or settings.playground_host,
            port or settings.playground_port,
            stop_event,
        )

    try:
        asyncio.run(serve())
    except OSError as e:
        typer.secho(f"Server error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
