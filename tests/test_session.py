from __future__ import annotations

import json
import tempfile
import threading
import unittest
from pathlib import Path
from typing import Any, AsyncIterator

import httpx
from pydantic import BaseModel

from linux_helper.agent.session import GENERATION_FAILED, PROCESSING_FAILED, ChatSession
from linux_helper.config.models import ModelSettings
from linux_helper.llm.client import (
    ChatCompletionClient,
    CompletionChunk,
    CompletionError,
    TextDelta,
    ToolCallRequest,
)
from linux_helper.persistence.messages import MessageStore
from linux_helper.persona import LINUX_EXPERT_PROMPT
from linux_helper.protocol.events import (
    ClearedEvent,
    DoneEvent,
    ErrorEvent,
    HistoryEvent,
    StreamEvent,
    ToolCallsEvent,
    ToolResultEvent,
    ToolResultsEvent,
)


class FakeCompletion:
    """Replays scripted completion steps; an exception in a step is raised."""

    def __init__(self, steps: list[list[CompletionChunk] | Exception]) -> None:
        self.steps = list(steps)
        self.calls: list[tuple[list[dict[str, Any]], list[dict[str, Any]] | None]] = []

    async def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[CompletionChunk]:
        self.calls.append(([dict(message) for message in messages], tools))
        step = self.steps.pop(0) if self.steps else []
        if isinstance(step, Exception):
            raise step
        for chunk in step:
            yield chunk


class ChatSessionTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = MessageStore(Path(self._tmp.name) / "messages.sqlite3")
        self.log = self.store.conversation("default")
        self.sent: list[BaseModel] = []

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def _send(self, event: BaseModel) -> None:
        self.sent.append(event)

    def _session(self, completion: FakeCompletion, max_steps: int = 5) -> ChatSession:
        return ChatSession(log=self.log, completion=completion, send=self._send, max_steps=max_steps)

    async def test_chat_streams_and_persists_reply(self) -> None:
        completion = FakeCompletion([[TextDelta("Use "), TextDelta("`df -h`.")]])
        session = self._session(completion)

        await session.handle_raw('{"type": "chat", "content": "disk space?"}')

        self.assertEqual(
            self.sent,
            [StreamEvent(content="Use "), StreamEvent(content="`df -h`."), DoneEvent(content="Use `df -h`.")],
        )
        self.assertEqual(
            [message.to_payload() for message in self.log.read()],
            [{"role": "user", "content": "disk space?"}, {"role": "assistant", "content": "Use `df -h`."}],
        )
        messages, tools = completion.calls[0]
        self.assertEqual(messages[0], {"role": "system", "content": LINUX_EXPERT_PROMPT})
        self.assertEqual(messages[-1], {"role": "user", "content": "disk space?"})
        assert tools is not None
        self.assertEqual(len(tools), 5)

    async def test_chat_sends_prior_history(self) -> None:
        self.log.append("user", "earlier question")
        self.log.append("assistant", "earlier answer")
        completion = FakeCompletion([[TextDelta("ok")]])

        await self._session(completion).handle_raw('{"type": "chat", "content": "next"}')

        roles = [message["role"] for message in completion.calls[0][0]]
        self.assertEqual(roles, ["system", "user", "assistant", "user"])

    async def test_tool_step_runs_tool_and_feeds_result_back(self) -> None:
        call = ToolCallRequest(id="call_1", name="dangerCheck", arguments={"command": "rm -rf /"})
        completion = FakeCompletion([[TextDelta("Checking. "), call], [TextDelta("Do not run that.")]])

        await self._session(completion).handle_raw('{"type": "chat", "content": "is rm -rf / ok?"}')

        types = [event.type for event in self.sent]  # type: ignore[attr-defined]
        self.assertEqual(types, ["stream", "tool_calls", "tool_results", "stream", "done"])

        tool_calls = self.sent[1]
        assert isinstance(tool_calls, ToolCallsEvent)
        self.assertEqual(tool_calls.tools[0].name, "dangerCheck")
        self.assertEqual(tool_calls.tools[0].args, {"command": "rm -rf /"})

        tool_results = self.sent[2]
        assert isinstance(tool_results, ToolResultsEvent)
        result = tool_results.results[0]
        self.assertEqual(result["toolCallId"], "call_1")
        self.assertEqual(result["toolName"], "dangerCheck")
        self.assertTrue(result["result"]["hasDanger"])

        second_messages, _tools = completion.calls[1]
        self.assertEqual(second_messages[-2]["role"], "assistant")
        self.assertEqual(second_messages[-2]["tool_calls"][0]["id"], "call_1")
        self.assertEqual(second_messages[-1]["role"], "tool")
        self.assertEqual(second_messages[-1]["tool_call_id"], "call_1")
        self.assertEqual(len(json.loads(second_messages[-1]["content"])["risks"]), 2)

        self.assertEqual(self.sent[-1], DoneEvent(content="Checking. Do not run that."))
        self.assertEqual(self.log.read()[-1].content, "Checking. Do not run that.")

    async def test_failed_tool_is_reported_as_result(self) -> None:
        call = ToolCallRequest(id="call_9", name="formatDisk", arguments={})
        completion = FakeCompletion([[call], [TextDelta("Sorry.")]])

        await self._session(completion).handle_raw('{"type": "chat", "content": "x"}')

        tool_results = self.sent[1]
        assert isinstance(tool_results, ToolResultsEvent)
        self.assertIn("Unknown tool: formatDisk", tool_results.results[0]["result"]["error"])
        self.assertEqual(self.sent[-1], DoneEvent(content="Sorry."))

    async def test_stops_after_max_steps(self) -> None:
        call = ToolCallRequest(id="c", name="manPage", arguments={"command": "ls"})
        completion = FakeCompletion([[call], [call], [call]])

        await self._session(completion, max_steps=2).handle_raw('{"type": "chat", "content": "loop"}')

        self.assertEqual(len(completion.calls), 2)
        self.assertEqual(self.sent[-1], DoneEvent(content=""))

    async def test_completion_failure_sends_generation_error(self) -> None:
        completion = FakeCompletion([CompletionError("boom")])

        await self._session(completion).handle_raw('{"type": "chat", "content": "hi"}')

        self.assertEqual(self.sent, [ErrorEvent(message=GENERATION_FAILED)])
        self.assertEqual([message.role for message in self.log.read()], ["user"])

    async def test_log_writes_run_off_the_event_loop_thread(self) -> None:
        loop_thread = threading.get_ident()
        append_threads: list[int] = []
        stored_append = self.log.append

        def recording_append(role: str, content: str) -> None:
            append_threads.append(threading.get_ident())
            stored_append(role, content)

        self.log.append = recording_append  # type: ignore[method-assign]

        await self._session(FakeCompletion([[TextDelta("ok")]])).handle_raw('{"type": "chat", "content": "hi"}')

        self.assertEqual(len(append_threads), 2)
        self.assertNotIn(loop_thread, append_threads)
        self.assertEqual([message.role for message in self.log.read()], ["user", "assistant"])

    async def test_malformed_upstream_chunk_sends_generation_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text='data: {"choices": [null]}\n\n')

        completion = ChatCompletionClient(
            ModelSettings(base_url="http://llm.test/v1"),
            transport=httpx.MockTransport(handler),
        )
        session = ChatSession(log=self.log, completion=completion, send=self._send)
        try:
            await session.handle_raw('{"type": "chat", "content": "hi"}')
        finally:
            await completion.aclose()

        self.assertEqual(self.sent, [ErrorEvent(message=GENERATION_FAILED)])
        self.assertEqual([message.role for message in self.log.read()], ["user"])

    async def test_malformed_frame_sends_processing_error(self) -> None:
        session = self._session(FakeCompletion([]))

        await session.handle_raw("{not json")
        await session.handle_raw('{"type": "unknown"}')

        self.assertEqual(self.sent, [ErrorEvent(message=PROCESSING_FAILED)] * 2)

    async def test_get_history_and_clear(self) -> None:
        self.log.append("user", "q")
        self.log.append("assistant", "a")
        session = self._session(FakeCompletion([]))

        await session.handle_raw('{"type": "get_history"}')
        await session.handle_raw('{"type": "clear"}')
        await session.handle_raw('{"type": "get_history"}')

        self.assertEqual(
            self.sent,
            [
                HistoryEvent(messages=[{"role": "user", "content": "q"}, {"role": "assistant", "content": "a"}]),
                ClearedEvent(),
                HistoryEvent(messages=[]),
            ],
        )

    async def test_tool_confirm_runs_tool(self) -> None:
        session = self._session(FakeCompletion([]))

        await session.handle_raw('{"type": "tool_confirm", "toolName": "manPage", "args": {"command": "ls"}}')

        event = self.sent[0]
        assert isinstance(event, ToolResultEvent)
        self.assertEqual(event.result["type"], "manpage")
        self.assertIn("## LS(1)", event.result["instruction"])

    async def test_tool_confirm_unknown_tool_is_processing_error(self) -> None:
        session = self._session(FakeCompletion([]))

        await session.handle_raw('{"type": "tool_confirm", "toolName": "nope", "args": {}}')

        self.assertEqual(self.sent, [ErrorEvent(message=PROCESSING_FAILED)])


if __name__ == "__main__":
    unittest.main()
