import asyncio
import json
from contextlib import asynccontextmanager

import pytest
from aiohttp.test_utils import TestClient, TestServer

import playground
from logger import LogLevel
from playground import (
    CORS_HEADERS,
    NOT_FOUND_HTML,
    PlaygroundRouter,
    parse_chat_message,
    run_playground,
)


async def reply_hello(message):
    return "hello"


async def reject(message):
    raise ConnectionError("model offline")


@asynccontextmanager
async def playground_client(chat, logger, error_handler, **kwargs):
    router = PlaygroundRouter(chat, logger, error_handler, **kwargs)
    async with TestClient(TestServer(router.create_app())) as client:
        yield client


def messages(logger):
    return [entry.message for entry in logger.get_log_buffer()]


class TestParseChatMessage:
    @pytest.mark.parametrize(
        "body",
        [b"", b"not json", b"[]", b"{}", b'{"message": ""}', b'{"message": 42}', b"\xff\xfe"],
    )
    def test_rejects_unusable_bodies(self, body):
        assert parse_chat_message(body) is None

    def test_returns_message(self):
        assert parse_chat_message(b'{"message": "hi", "extra": 1}') == "hi"


class TestRoutes:
    @pytest.mark.asyncio
    async def test_options_preflight(self, quiet_logger, error_handler):
        """OPTIONS on any path answers 200 with an empty body."""
        async with playground_client(reply_hello, quiet_logger, error_handler) as client:
            resp = await client.options("/anything/at/all")
            assert resp.status == 200
            assert await resp.text() == ""
            for header, value in CORS_HEADERS.items():
                assert resp.headers[header] == value
        (entry,) = [e for e in quiet_logger.get_log_buffer() if e.message == "Preflight request completed"]
        assert entry.context["duration"].endswith("ms")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/", "/playground"])
    async def test_page_routes_serve_html(self, quiet_logger, error_handler, path):
        async with playground_client(reply_hello, quiet_logger, error_handler) as client:
            resp = await client.get(path)
            assert resp.status == 200
            assert resp.headers["Content-Type"] == "text/html; charset=utf-8"
            assert resp.headers["Access-Control-Allow-Origin"] == "*"
            assert "Local LLM Chat Playground" in await resp.text()
        assert "Playground page served" in messages(quiet_logger)

    @pytest.mark.asyncio
    async def test_unknown_path_is_404(self, quiet_logger, error_handler):
        async with playground_client(reply_hello, quiet_logger, error_handler) as client:
            resp = await client.get("/does-not-exist")
            assert resp.status == 404
            assert resp.headers["Content-Type"] == "text/html; charset=utf-8"
            assert resp.headers["Access-Control-Allow-Methods"] == "GET, POST, OPTIONS"
            assert await resp.text() == NOT_FOUND_HTML
        (entry,) = [e for e in quiet_logger.get_log_buffer() if e.message == "Page not found"]
        assert entry.level is LogLevel.WARN
        assert entry.context["url"] == "/does-not-exist"
        assert entry.context["duration"].endswith("ms")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method, path",
        [
            ("GET", "/api/chat"),
            ("POST", "/"),
            ("DELETE", "/playground"),
            ("HEAD", "/"),
            ("HEAD", "/playground"),
        ],
    )
    async def test_wrong_method_is_404(self, quiet_logger, error_handler, method, path):
        """Known paths with an unsupported method fall back to the 404 page."""
        async with playground_client(reply_hello, quiet_logger, error_handler) as client:
            resp = await client.request(method, path)
            assert resp.status == 404
            assert resp.headers["Content-Type"] == "text/html; charset=utf-8"
            if method != "HEAD":
                assert await resp.text() == NOT_FOUND_HTML


class TestChatEndpoint:
    @pytest.mark.asyncio
    async def test_successful_chat(self, quiet_logger, error_handler):
        received = []

        async def chat(message):
            received.append(message)
            return "hello"

        async with playground_client(chat, quiet_logger, error_handler) as client:
            resp = await client.post("/api/chat", data=json.dumps({"message": "hi"}))
            assert resp.status == 200
            assert resp.headers["Access-Control-Allow-Origin"] == "*"
            assert await resp.json() == {"response": "hello"}
        assert received == ["hi"]
        (done,) = [e for e in quiet_logger.get_log_buffer() if e.message == "Chat API request completed"]
        assert done.level is LogLevel.INFO
        assert done.context["messageLength"] == 2
        assert done.context["responseLength"] == 5
        assert done.context["clientIP"] == "127.0.0.1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body", ["{}", "not json", '{"message": 7}', '{"message": ""}', "", '["hi"]']
    )
    async def test_missing_message_is_400(self, quiet_logger, error_handler, body):
        called = []

        async def chat(message):
            called.append(message)
            return "unused"

        async with playground_client(chat, quiet_logger, error_handler) as client:
            resp = await client.post("/api/chat", data=body)
            assert resp.status == 400
            assert await resp.json() == {"error": "message is required"}
        assert called == []
        (warning,) = [e for e in quiet_logger.get_log_buffer() if e.level is LogLevel.WARN]
        assert warning.message == "Invalid chat API request"

    @pytest.mark.asyncio
    async def test_gateway_failure_is_500(self, quiet_logger, error_handler):
        async with playground_client(reject, quiet_logger, error_handler) as client:
            resp = await client.post("/api/chat", json={"message": "hi"})
            assert resp.status == 500
            assert await resp.json() == {"error": "chat processing failed"}
        errors = [e for e in quiet_logger.get_log_buffer() if e.level is LogLevel.ERROR]
        assert [e.message for e in errors] == ["Chat gateway: failure", "Chat API request failed"]
        assert errors[1].context["message"] == "hi"
        assert isinstance(errors[1].error, ConnectionError)

    @pytest.mark.asyncio
    async def test_chunked_body_is_read_to_completion(self, quiet_logger, error_handler):
        """A body streamed in several chunks is parsed only once complete."""
        async def chunks():
            for part in (b'{"mess', b'age": "strea', b'med"}'):
                yield part

        async with playground_client(lambda m: asyncio.sleep(0, result=m.upper()), quiet_logger, error_handler) as client:
            resp = await client.post("/api/chat", data=chunks())
            assert resp.status == 200
            assert await resp.json() == {"response": "STREAMED"}

    @pytest.mark.asyncio
    async def test_body_over_limit_is_413(self, quiet_logger, error_handler):
        async with playground_client(
            reply_hello, quiet_logger, error_handler, max_body_bytes=16
        ) as client:
            resp = await client.post("/api/chat", json={"message": "x" * 64})
            assert resp.status == 413
            assert await resp.json() == {"error": "request body too large"}
        assert "Chat API request body too large" in messages(quiet_logger)

    @pytest.mark.asyncio
    async def test_unicode_reply(self, quiet_logger, error_handler):
        async def chat(message):
            return "こんにちは"

        async with playground_client(chat, quiet_logger, error_handler) as client:
            resp = await client.post("/api/chat", json={"message": "hi"})
            assert await resp.json() == {"response": "こんにちは"}

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_logger(self, quiet_logger, error_handler):
        """Interleaved requests each get their own answer."""
        async def chat(message):
            await asyncio.sleep(0.01 if message == "slow" else 0)
            return message

        async with playground_client(chat, quiet_logger, error_handler) as client:
            slow, fast = await asyncio.gather(
                client.post("/api/chat", json={"message": "slow"}),
                client.post("/api/chat", json={"message": "fast"}),
            )
            assert await slow.json() == {"response": "slow"}
            assert await fast.json() == {"response": "fast"}
        completed = [e for e in quiet_logger.get_log_buffer() if e.message == "Chat API request completed"]
        assert len(completed) == 2


class TestServerLifecycle:
    @pytest.mark.asyncio
    async def test_run_playground_stops_on_event(self, monkeypatch, quiet_logger, error_handler):
        """The server drains and closes once the stop event is set."""
        echoed = []
        monkeypatch.setattr(playground.typer, "echo", lambda *a, **k: echoed.append(a))
        monkeypatch.setattr(playground.typer, "secho", lambda *a, **k: echoed.append(a))

        router = PlaygroundRouter(reply_hello, quiet_logger, error_handler)
        stop_event = asyncio.Event()
        server = asyncio.ensure_future(run_playground(router, "127.0.0.1", 0, stop_event))
        await asyncio.sleep(0.05)
        stop_event.set()
        await asyncio.wait_for(server, timeout=5)

        logged = messages(quiet_logger)
        assert logged.index("Playground server started") < logged.index("Playground server stopped")
        assert echoed
