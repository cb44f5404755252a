# playground.py
#
# Description: HTTP playground for the local chat client. Serves a static
#              chat page and a JSON endpoint that forwards one message to the
#              chat gateway, with CORS, timing, and outcome logging on every
#              route.
#

# --------------------------------------------------------------------------- #
# imports
# --------------------------------------------------------------------------- #
from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import typer
from aiohttp import web

from error_handler import ErrorHandler
from logger import Logger
from prompts import preview

# --------------------------------------------------------------------------- #
# constants
# --------------------------------------------------------------------------- #
CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}
PAGE_ROUTES = ("/", "/playground")
CHAT_ROUTE = "/api/chat"
NOT_FOUND_HTML = "<h1>404 - page not found</h1>"
DEFAULT_MAX_BODY_BYTES = 1024 * 1024

ERROR_MESSAGE_REQUIRED = "message is required"
ERROR_CHAT_FAILED = "chat processing failed"
ERROR_BODY_TOO_LARGE = "request body too large"
ERROR_SERVER = "server error"

STARTED_AT = web.RequestKey("started_at", float)

ChatFunc = Callable[[str], Awaitable[str]]

PLAYGROUND_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Local LLM Chat Playground</title>
    <style>
        body {
            font-family: 'Arial', sans-serif;
            max-width: 800px;
            margin: 0 auto;
            padding: 20px;
            background-color: #f5f5f5;
        }
        .container {
            background: white;
            border-radius: 10px;
            padding: 30px;
            box-shadow: 0 2px 10px rgba(0,0,0,0.1);
        }
        h1 {
            color: #333;
            text-align: center;
            margin-bottom: 30px;
        }
        .subtitle {
            text-align: center;
            color: #666;
            margin-bottom: 30px;
        }
        .chat-container {
            border: 1px solid #ddd;
            border-radius: 8px;
            height: 400px;
            overflow-y: auto;
            padding: 15px;
            background-color: #fafafa;
            margin-bottom: 20px;
        }
        .message {
            margin-bottom: 15px;
            padding: 10px;
            border-radius: 6px;
            white-space: pre-wrap;
        }
        .user-message {
            background-color: #007bff;
            color: white;
            text-align: right;
        }
        .ai-message {
            background-color: #e9ecef;
            color: #333;
        }
        .input-container {
            display: flex;
            gap: 10px;
        }
        input[type="text"] {
            flex: 1;
            padding: 12px;
            border: 1px solid #ddd;
            border-radius: 6px;
            font-size: 16px;
        }
        button {
            padding: 12px 24px;
            background-color: #007bff;
            color: white;
            border: none;
            border-radius: 6px;
            cursor: pointer;
            font-size: 16px;
        }
        button:hover {
            background-color: #0056b3;
        }
        button:disabled {
            background-color: #6c757d;
            cursor: not-allowed;
        }
        .status {
            text-align: center;
            margin-top: 10px;
            font-size: 14px;
            color: #666;
        }
    </style>
</head>
<body>
    <div class="container">
        <h1>Local LLM Chat Playground</h1>
        <p class="subtitle">Chat with a model running on your own machine.</p>
        <div class="chat-container" id="chatContainer"></div>
        <div class="input-container">
            <input type="text" id="messageInput" placeholder="Type a message..." autofocus>
            <button id="sendButton">Send</button>
        </div>
        <div class="status" id="status"></div>
    </div>

    <script>
        const chatContainer = document.getElementById('chatContainer');
        const messageInput = document.getElementById('messageInput');
        const sendButton = document.getElementById('sendButton');
        const status = document.getElementById('status');

        sendButton.addEventListener('click', sendMessage);
        messageInput.addEventListener('keypress', (e) => {
            if (e.key === 'Enter') {
                sendMessage();
            }
        });

        async function sendMessage() {
            const message = messageInput.value.trim();
            if (!message) return;

            addMessage('user', message);
            messageInput.value = '';

            sendButton.disabled = true;
            status.textContent = 'Thinking...';

            try {
                const response = await fetch('/api/chat', {
                    method: 'POST',
                    headers: {
                        'Content-Type': 'application/json',
                    },
                    body: JSON.stringify({ message }),
                });

                if (!response.ok) {
                    throw new Error('network error');
                }

                const data = await response.json();
                addMessage('ai', data.response);
                status.textContent = '';
            } catch (error) {
                addMessage('ai', 'Error: ' + error.message);
                status.textContent = 'Something went wrong';
            } finally {
                sendButton.disabled = false;
            }
        }

        function addMessage(type, text) {
            const messageDiv = document.createElement('div');
            messageDiv.className = `message ${type}-message`;

            const label = document.createElement('strong');
            label.textContent = (type === 'user' ? 'You' : 'AI') + ': ';
            messageDiv.appendChild(label);
            messageDiv.appendChild(document.createTextNode(text));

            chatContainer.appendChild(messageDiv);
            chatContainer.scrollTop = chatContainer.scrollHeight;
        }
    </script>
</body>
</html>
"""

# --------------------------------------------------------------------------- #
# request helpers
# --------------------------------------------------------------------------- #
def parse_chat_message(body: bytes) -> Optional[str]:
    """Return the ``message`` field of a JSON body, or None when unusable."""
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    message = payload.get("message")
    if not isinstance(message, str) or not message:
        return None
    return message


def _client_ip(request: web.Request) -> str:
    return request.remote or "unknown"


def _duration(request: web.Request) -> str:
    started = request.get(STARTED_AT, time.perf_counter())
    return f"{int((time.perf_counter() - started) * 1000)}ms"


def _json_response(payload: Dict[str, Any], status: int = 200) -> web.Response:
    return web.json_response(payload, status=status)

# --------------------------------------------------------------------------- #
# router
# --------------------------------------------------------------------------- #
class PlaygroundRouter:
    """
    Dispatch playground requests by method and path.

    Every request ends with exactly one response: OPTIONS preflight, the
    static page, the chat endpoint, or the 404 page.
    """

    def __init__(
        self,
        chat: ChatFunc,
        logger: Logger,
        error_handler: ErrorHandler,
        max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
    ) -> None:
        self.logger = logger
        self.max_body_bytes = max_body_bytes
        self._chat = error_handler.capture_async(chat, "Chat gateway")

    def create_app(self) -> web.Application:
        app = web.Application(
            middlewares=[self.cors_middleware, self.not_found_middleware]
        )
        for path in PAGE_ROUTES:
            app.router.add_get(path, self.handle_page, allow_head=False)
        app.router.add_post(CHAT_ROUTE, self.handle_chat)
        return app

    # --- middlewares -------------------------------------------------------
    @web.middleware
    async def cors_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        request[STARTED_AT] = time.perf_counter()
        self.logger.debug(
            "HTTP request received",
            {
                "method": request.method,
                "url": request.path_qs,
                "clientIP": _client_ip(request),
                "userAgent": request.headers.get("User-Agent"),
            },
        )

        if request.method == "OPTIONS":
            response: web.StreamResponse = web.Response(status=200)
            self.logger.debug(
                "Preflight request completed",
                {"url": request.path_qs, "clientIP": _client_ip(request), "duration": _duration(request)},
            )
        else:
            try:
                response = await handler(request)
            except web.HTTPException:
                raise
            except Exception as exc:
                self.logger.error(
                    "Request handling failed",
                    exc,
                    {"url": request.path_qs, "clientIP": _client_ip(request), "duration": _duration(request)},
                )
                response = _json_response({"error": ERROR_SERVER}, status=500)

        response.headers.update(CORS_HEADERS)
        return response

    @web.middleware
    async def not_found_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        try:
            return await handler(request)
        except (web.HTTPNotFound, web.HTTPMethodNotAllowed):
            self.logger.warn(
                "Page not found",
                {
                    "url": request.path_qs,
                    "method": request.method,
                    "clientIP": _client_ip(request),
                    "duration": _duration(request),
                },
            )
            return web.Response(
                status=404, text=NOT_FOUND_HTML, content_type="text/html", charset="utf-8"
            )

    # --- handlers ----------------------------------------------------------
    async def handle_page(self, request: web.Request) -> web.Response:
        response = web.Response(
            text=PLAYGROUND_HTML, content_type="text/html", charset="utf-8"
        )
        self.logger.info(
            "Playground page served",
            {"url": request.path, "clientIP": _client_ip(request), "duration": _duration(request)},
        )
        return response

    async def handle_chat(self, request: web.Request) -> web.Response:
        client_ip = _client_ip(request)

        body = await self._read_body(request)
        if body is None:
            self.logger.warn(
                "Chat API request body too large",
                {"clientIP": client_ip, "limit": self.max_body_bytes, "duration": _duration(request)},
            )
            return _json_response({"error": ERROR_BODY_TOO_LARGE}, status=413)

        message = parse_chat_message(body)
        self.logger.debug(
            "Chat API request started",
            {"clientIP": client_ip, "messageLength": len(message) if message else 0},
        )
        if message is None:
            self.logger.warn(
                "Invalid chat API request",
                {
                    "clientIP": client_ip,
                    "body": preview(body.decode("utf-8", errors="replace")),
                    "duration": _duration(request),
                },
            )
            return _json_response({"error": ERROR_MESSAGE_REQUIRED}, status=400)

        outcome = await self._chat(message)
        if not outcome.ok:
            self.logger.error(
                "Chat API request failed",
                outcome.error,
                {"clientIP": client_ip, "duration": _duration(request), "message": preview(message)},
            )
            return _json_response({"error": ERROR_CHAT_FAILED}, status=500)

        reply = outcome.value
        self.logger.info(
            "Chat API request completed",
            {
                "clientIP": client_ip,
                "duration": _duration(request),
                "messageLength": len(message),
                "responseLength": len(reply),
            },
        )
        return _json_response({"response": reply})

    async def _read_body(self, request: web.Request) -> Optional[bytes]:
        """Collect the streamed body; None once it outgrows ``max_body_bytes``."""
        chunks = []
        size = 0
        async for chunk in request.content.iter_any():
            size += len(chunk)
            if self.max_body_bytes and size > self.max_body_bytes:
                return None
            chunks.append(chunk)
        return b"".join(chunks)

# --------------------------------------------------------------------------- #
# server lifecycle
# --------------------------------------------------------------------------- #
async def run_playground(
    router: PlaygroundRouter,
    host: str,
    port: int,
    stop_event: asyncio.Event,
) -> None:
    """
    Serve the playground until ``stop_event`` is set, then drain and close.
    """
    logger = router.logger
    logger.info("Playground server starting", {"port": port})

    runner = web.AppRunner(router.create_app())
    await runner.setup()
    site = web.TCPSite(runner, host=host, port=port)
    try:
        await site.start()
    except OSError as exc:
        logger.error("Playground server error", exc, {"port": port})
        await runner.cleanup()
        raise

    url = f"http://{host}:{port}"
    logger.info("Playground server started", {"port": port, "url": url})
    typer.secho("Local LLM playground is running", fg=typer.colors.BLUE, bold=True)
    typer.echo(f"URL: {url}")
    typer.echo("Open it in a browser to start chatting.")
    typer.secho("Press Ctrl+C to stop.", fg=typer.colors.BRIGHT_BLACK)

    try:
        await stop_event.wait()
    finally:
        logger.info("Playground server stopping")
        typer.echo("\nShutting down the playground...")
        await runner.cleanup()
        logger.info("Playground server stopped")
        typer.secho("Server closed cleanly.", fg=typer.colors.GREEN)
