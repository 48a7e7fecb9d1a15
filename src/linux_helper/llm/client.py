"""Streaming client for OpenAI-compatible chat completion endpoints."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Protocol

import httpx

from linux_helper.config.models import ModelSettings
from linux_helper.runtime_logging import get_runtime_logger


class CompletionError(Exception):
    pass


@dataclass(slots=True)
class TextDelta:
    text: str


@dataclass(slots=True)
class ToolCallRequest:
    id: str
    name: str
    arguments: dict[str, Any]
    raw_arguments: str = ""

    def to_message_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.raw_arguments or json.dumps(self.arguments)},
        }


CompletionChunk = TextDelta | ToolCallRequest


class CompletionClient(Protocol):
    def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[CompletionChunk]: ...


@dataclass(slots=True)
class _PartialToolCall:
    id: str = ""
    name: str = ""
    arguments: list[str] = field(default_factory=list)

    def build(self, index: int) -> ToolCallRequest:
        raw = "".join(self.arguments)
        try:
            parsed = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError:
            parsed = {}
        if not isinstance(parsed, dict):
            parsed = {}
        return ToolCallRequest(
            id=self.id or f"call_{index}",
            name=self.name,
            arguments=parsed,
            raw_arguments=raw,
        )


class ChatCompletionClient:
    """One streamed completion step per ``stream`` call.

    Text deltas are yielded as they arrive. Tool call fragments are collected
    and yielded once the step finishes.
    """

    def __init__(
        self,
        settings: ModelSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.logger = get_runtime_logger()
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.request_timeout,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "text/event-stream"}
        api_key = os.getenv(self.settings.api_key_env)
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    def _payload(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.settings.model,
            "messages": messages,
            "temperature": self.settings.temperature,
            "stream": True,
        }
        if tools:
            payload["tools"] = tools
        return payload

    async def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[CompletionChunk]:
        self.logger.debug(
            "llm.request",
            model=self.settings.model,
            message_count=len(messages),
            tool_count=len(tools or []),
        )
        partials: dict[int, _PartialToolCall] = {}
        try:
            async with self._client.stream(
                "POST",
                "/chat/completions",
                json=self._payload(messages, tools),
                headers=self._headers(),
            ) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise CompletionError(
                        f"Completion request failed with status {response.status_code}: {body[:300]}"
                    )
                async for line in response.aiter_lines():
                    data = _sse_data(line)
                    if data is None:
                        continue
                    if data == "[DONE]":
                        break
                    for text in _consume_chunk(data, partials):
                        yield TextDelta(text=text)
        except (httpx.HTTPError, httpx.StreamError) as exc:
            self.logger.error("llm.request.failed", error=str(exc))
            raise CompletionError(f"Completion request failed: {exc}") from exc

        for index in sorted(partials):
            call = partials[index].build(index)
            self.logger.debug("llm.tool_call", name=call.name, call_id=call.id)
            yield call

    async def aclose(self) -> None:
        await self._client.aclose()


def _sse_data(line: str) -> str | None:
    line = line.strip()
    if not line.startswith("data:"):
        return None
    return line[len("data:"):].strip()


def _consume_chunk(data: str, partials: dict[int, _PartialToolCall]) -> list[str]:
    try:
        chunk = json.loads(data)
    except json.JSONDecodeError as exc:
        raise CompletionError(f"Malformed stream chunk: {data[:120]}") from exc
    if not isinstance(chunk, dict):
        raise CompletionError(f"Stream chunk is not an object: {data[:120]}")

    if "error" in chunk:
        error = chunk.get("error") or {}
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise CompletionError(f"Completion service error: {message}")

    texts: list[str] = []
    for choice in _objects(chunk.get("choices"), "choices"):
        delta = choice.get("delta") or {}
        if not isinstance(delta, dict):
            raise CompletionError("Stream chunk delta is not an object")
        content = delta.get("content")
        if isinstance(content, str) and content:
            texts.append(content)
        for fragment in _objects(delta.get("tool_calls"), "tool_calls"):
            try:
                index = int(fragment.get("index", 0))
            except (TypeError, ValueError) as exc:
                raise CompletionError(f"Bad tool call index: {fragment.get('index')!r}") from exc
            partial = partials.setdefault(index, _PartialToolCall())
            if fragment.get("id"):
                partial.id = str(fragment["id"])
            function = fragment.get("function") or {}
            if not isinstance(function, dict):
                raise CompletionError("Tool call function is not an object")
            if function.get("name"):
                partial.name += str(function["name"])
            if function.get("arguments"):
                partial.arguments.append(str(function["arguments"]))
    return texts


def _objects(value: Any, name: str) -> list[dict[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        raise CompletionError(f"Stream chunk field {name!r} must be a list of objects")
    return value
