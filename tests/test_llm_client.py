from __future__ import annotations

import json
import os
import unittest
from typing import Any, AsyncIterator
from unittest.mock import patch

import httpx

from linux_helper.config.models import ModelSettings
from linux_helper.llm.client import ChatCompletionClient, CompletionError, TextDelta, ToolCallRequest


def _sse(*chunks: dict[str, Any] | str) -> str:
    lines = []
    for chunk in chunks:
        data = chunk if isinstance(chunk, str) else json.dumps(chunk)
        lines.append(f"data: {data}\n\n")
    return "".join(lines)


def _text(content: str) -> dict[str, Any]:
    return {"choices": [{"index": 0, "delta": {"content": content}}]}


class ChatCompletionClientTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.requests: list[httpx.Request] = []
        self.settings = ModelSettings(base_url="http://llm.test/v1", model="test-model", api_key_env="LH_TEST_KEY")

    def _client(self, body: str, status: int = 200) -> ChatCompletionClient:
        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return httpx.Response(status, text=body, headers={"content-type": "text/event-stream"})

        return ChatCompletionClient(self.settings, transport=httpx.MockTransport(handler))

    async def _collect(self, client: ChatCompletionClient, tools: list[dict[str, Any]] | None = None) -> list[Any]:
        try:
            return [chunk async for chunk in client.stream([{"role": "user", "content": "hi"}], tools)]
        finally:
            await client.aclose()

    async def test_streams_text_deltas(self) -> None:
        client = self._client(_sse(_text("Use "), _text("`df -h`"), "[DONE]"))

        chunks = await self._collect(client)

        self.assertEqual(chunks, [TextDelta("Use "), TextDelta("`df -h`")])
        request = self.requests[0]
        self.assertEqual(str(request.url), "http://llm.test/v1/chat/completions")
        payload = json.loads(request.content)
        self.assertEqual(payload["model"], "test-model")
        self.assertTrue(payload["stream"])
        self.assertNotIn("tools", payload)

    async def test_assembles_tool_calls_from_fragments(self) -> None:
        body = _sse(
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "id": "call_1", "function": {"name": "dangerCheck", "arguments": "{\"comm"}}]}}]},
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": "and\": \"rm -rf /\"}"}}]}}]},
            {"choices": [{"delta": {"tool_calls": [{"index": 1, "id": "call_2", "function": {"name": "manPage", "arguments": "{}"}}]}}]},
            "[DONE]",
        )
        client = self._client(body)

        chunks = await self._collect(client, tools=[{"type": "function", "function": {"name": "dangerCheck"}}])

        self.assertEqual(len(chunks), 2)
        first, second = chunks
        self.assertIsInstance(first, ToolCallRequest)
        self.assertEqual(first.id, "call_1")
        self.assertEqual(first.name, "dangerCheck")
        self.assertEqual(first.arguments, {"command": "rm -rf /"})
        self.assertEqual(second.name, "manPage")
        self.assertEqual(json.loads(self.requests[0].content)["tools"][0]["function"]["name"], "dangerCheck")

    async def test_invalid_tool_arguments_become_empty(self) -> None:
        body = _sse(
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"name": "manPage", "arguments": "{oops"}}]}}]},
        )
        chunks = await self._collect(self._client(body))

        self.assertEqual(chunks[0].arguments, {})
        self.assertEqual(chunks[0].id, "call_0")
        self.assertEqual(chunks[0].raw_arguments, "{oops")

    async def test_http_error_status_raises(self) -> None:
        client = self._client('{"error": "bad key"}', status=401)

        with self.assertRaises(CompletionError) as ctx:
            await self._collect(client)

        self.assertIn("401", str(ctx.exception))

    async def test_error_chunk_raises(self) -> None:
        client = self._client(_sse({"error": {"message": "overloaded"}}))

        with self.assertRaises(CompletionError) as ctx:
            await self._collect(client)

        self.assertIn("overloaded", str(ctx.exception))

    async def test_transport_failure_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = ChatCompletionClient(self.settings, transport=httpx.MockTransport(handler))

        with self.assertRaises(CompletionError):
            await self._collect(client)

    async def test_non_object_chunks_raise_completion_error(self) -> None:
        bodies = (
            _sse('["keepalive"]'),
            _sse({"choices": [None]}),
            _sse({"choices": [{"delta": "text"}]}),
            _sse({"choices": [{"delta": {"tool_calls": [{"index": "x", "function": {}}]}}]}),
        )
        for body in bodies:
            with self.subTest(body=body):
                with self.assertRaises(CompletionError):
                    await self._collect(self._client(body))

    async def test_broken_response_stream_raises_completion_error(self) -> None:
        class BrokenStream(httpx.AsyncByteStream):
            async def __aiter__(self) -> AsyncIterator[bytes]:
                yield _sse(_text("partial")).encode()
                raise httpx.StreamClosed()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=BrokenStream(), headers={"content-type": "text/event-stream"})

        client = ChatCompletionClient(self.settings, transport=httpx.MockTransport(handler))

        with self.assertRaises(CompletionError):
            await self._collect(client)

    async def test_sends_bearer_token_when_configured(self) -> None:
        client = self._client(_sse("[DONE]"))

        with patch.dict(os.environ, {"LH_TEST_KEY": "sk-test"}):
            await self._collect(client)

        self.assertEqual(self.requests[0].headers["authorization"], "Bearer sk-test")

    async def test_omits_authorization_without_key(self) -> None:
        client = self._client(_sse("[DONE]"))

        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("LH_TEST_KEY", None)
            await self._collect(client)

        self.assertNotIn("authorization", self.requests[0].headers)


if __name__ == "__main__":
    unittest.main()
