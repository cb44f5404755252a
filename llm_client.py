# llm_client.py
# Description: Provides clients for the chat gateway of a local Ollama
# server (OpenAI-compatible API). Handles request formatting, timing
# telemetry, and translation of transport failures into client errors.

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import aiohttp
import requests

from config import AppConfig
from logger import Logger
from prompts import build_messages, preview

EMPTY_REPLY = "No response was returned."
LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1"}
MAX_OFFLINE_MESSAGE_LENGTH = 5_000

# ---------------------------------------------------------------------------
# custom exceptions
# ---------------------------------------------------------------------------

class ChatRequestError(Exception):
    """Base exception for chat gateway errors."""

class ChatConnectionError(ChatRequestError):
    """Raised for connection failures to the Ollama server."""

class ChatResponseError(ChatRequestError):
    """Raised when Ollama returns an error or an unreadable response."""

class ChatTimeoutError(ChatRequestError):
    """Raised when a request to Ollama times out."""

# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------

def _validate_ollama_url(url: str) -> None:
    """Refuse plain HTTP for anything but a loopback host."""
    parsed = urlparse(url)
    if parsed.scheme == "https":
        return
    if parsed.hostname in LOCAL_HOSTS:
        return
    raise ValueError(
        f"Insecure Ollama URL configured for non-local host: {url}. Use https://."
    )


def _validate_message(message: Any) -> None:
    if not isinstance(message, str) or not message.strip():
        raise ValueError("Message must be a non-empty string.")


def _extract_reply(data: Any) -> str:
    """Return the first choice's content, or EMPTY_REPLY when there is none."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return EMPTY_REPLY
    return content or EMPTY_REPLY


def _elapsed_ms(started: float) -> str:
    return f"{int((time.perf_counter() - started) * 1000)}ms"

# ---------------------------------------------------------------------------
# ollama client
# ---------------------------------------------------------------------------

class OllamaChatClient:
    """
    Single-shot request/response chat against Ollama.

    ``complete`` is blocking and used by the terminal surfaces; ``chat`` is a
    coroutine used by the playground server. Neither retries.
    """

    def __init__(self, config: AppConfig, logger: Logger) -> None:
        self.config = config
        self.logger = logger

    @property
    def endpoint(self) -> str:
        url = f"{self.config.ollama_base_url.rstrip('/')}/chat/completions"
        _validate_ollama_url(url)
        return url

    def build_payload(self, message: str) -> Dict[str, Any]:
        return {
            "model": self.config.ollama_model,
            "messages": build_messages(message),
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "stream": False,
        }

    def complete(self, message: str) -> str:
        """
        Send ``message`` and block until the reply arrives.

        Raises:
            ValueError: for a blank message or an insecure endpoint.
            ChatRequestError: for transport or API failures.
        """
        _validate_message(message)
        url = self.endpoint
        started = self._log_start(message)
        try:
            data = self._post_sync(url, self.build_payload(message))
        except ChatRequestError as exc:
            self._log_failure(exc, message, started)
            raise
        return self._log_done(_extract_reply(data), started)

    async def chat(self, message: str) -> str:
        """Coroutine counterpart of ``complete``."""
        _validate_message(message)
        url = self.endpoint
        started = self._log_start(message)
        try:
            data = await self._post_async(url, self.build_payload(message))
        except ChatRequestError as exc:
            self._log_failure(exc, message, started)
            raise
        return self._log_done(_extract_reply(data), started)

    # --- transport ---------------------------------------------------------
    def _post_sync(self, url: str, payload: Dict[str, Any]) -> Any:
        try:
            response = requests.post(url, json=payload, timeout=self.config.ollama_timeout)
            response.raise_for_status()
        except requests.exceptions.ConnectionError as e:
            raise ChatConnectionError(f"Connection to {url} failed.") from e
        except requests.exceptions.Timeout as e:
            raise ChatTimeoutError("Request timed out.") from e
        except requests.exceptions.HTTPError as e:
            raise ChatResponseError(
                f"Ollama returned HTTP {e.response.status_code}."
            ) from e
        except requests.exceptions.RequestException as e:
            raise ChatRequestError("An unexpected request error occurred.") from e
        try:
            return response.json()
        except ValueError as e:
            raise ChatResponseError("Ollama returned a non-JSON response.") from e

    async def _post_async(self, url: str, payload: Dict[str, Any]) -> Any:
        timeout = aiohttp.ClientTimeout(total=self.config.ollama_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=payload) as response:
                    response.raise_for_status()
                    return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise ChatTimeoutError("Request timed out.") from e
        except aiohttp.ClientResponseError as e:
            raise ChatResponseError(f"Ollama returned HTTP {e.status}.") from e
        except aiohttp.ClientConnectionError as e:
            raise ChatConnectionError(f"Connection to {url} failed.") from e
        except aiohttp.ClientError as e:
            raise ChatRequestError("An unexpected request error occurred.") from e
        except ValueError as e:
            raise ChatResponseError("Ollama returned a non-JSON response.") from e

    # --- telemetry ---------------------------------------------------------
    def _log_start(self, message: str) -> float:
        self.logger.debug(
            "Chat request started",
            {"message": preview(message), "messageLength": len(message)},
        )
        return time.perf_counter()

    def _log_done(self, reply: str, started: float) -> str:
        self.logger.info(
            "Chat request completed",
            {
                "duration": _elapsed_ms(started),
                "responseLength": len(reply),
                "model": self.config.ollama_model,
            },
        )
        return reply

    def _log_failure(self, exc: Exception, message: str, started: float) -> None:
        self.logger.error(
            "Chat request failed",
            exc,
            {"duration": _elapsed_ms(started), "message": preview(message)},
        )

# ---------------------------------------------------------------------------
# offline client
# ---------------------------------------------------------------------------

class OfflineChatClient:
    """Answers locally without a model; useful for trying the surfaces out."""

    def __init__(self, logger: Logger) -> None:
        self.logger = logger

    def complete(self, message: Optional[str]) -> str:
        if message is None:
            reply = "No message was provided."
        elif message == "":
            reply = "The message is empty. Please tell me something."
        elif len(message) > MAX_OFFLINE_MESSAGE_LENGTH:
            reply = "The message is too long. Please keep it shorter."
        else:
            reply = f'Received message: "{message}". This is a reply.'
        self.logger.debug("Offline reply generated", {"responseLength": len(reply)})
        return reply

    async def chat(self, message: Optional[str]) -> str:
        return self.complete(message)
