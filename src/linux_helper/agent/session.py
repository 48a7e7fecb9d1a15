"""Per-conversation chat orchestration between a client and the model."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, assert_never

from linux_helper.llm.client import CompletionClient, CompletionError, TextDelta, ToolCallRequest
from linux_helper.persistence.messages import ConversationLog
from linux_helper.persona import LINUX_EXPERT_PROMPT
from linux_helper.protocol.events import (
    ChatRequest,
    ClearedEvent,
    ClearRequest,
    ClientEvent,
    DoneEvent,
    ErrorEvent,
    HistoryEvent,
    HistoryRequest,
    ProtocolError,
    ServerEvent,
    StreamEvent,
    ToolCallsEvent,
    ToolConfirmRequest,
    ToolInvocation,
    ToolResultEvent,
    ToolResultsEvent,
    parse_client_event,
)
from linux_helper.runtime_logging import get_runtime_logger
from linux_helper.tools.registry import ToolError, execute_tool, tool_definitions

Sender = Callable[[ServerEvent], Awaitable[None]]

PROCESSING_FAILED = "Failed to process message"
GENERATION_FAILED = "Failed to generate response. Please try again."
DEFAULT_MAX_STEPS = 5


class ChatSession:
    """Handles client events for one conversation.

    The message log and the completion client are injected; ``send``
    delivers agent events back to whichever transport owns the session.
    """

    def __init__(
        self,
        *,
        log: ConversationLog,
        completion: CompletionClient,
        send: Sender,
        max_steps: int = DEFAULT_MAX_STEPS,
        system_prompt: str = LINUX_EXPERT_PROMPT,
    ) -> None:
        self.log = log
        self.completion = completion
        self.send = send
        self.max_steps = max_steps
        self.system_prompt = system_prompt
        self.logger = get_runtime_logger().bind(conversation_id=log.conversation_id)

    @property
    def conversation_id(self) -> str:
        return self.log.conversation_id

    async def handle_raw(self, raw: str | bytes) -> None:
        try:
            event = parse_client_event(raw)
            await self.handle(event)
        except ProtocolError as exc:
            self.logger.warning("session.frame.invalid", error=str(exc))
            await self.send(ErrorEvent(message=PROCESSING_FAILED))
        except Exception as exc:
            self.logger.error(
                "session.frame.failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await self.send(ErrorEvent(message=PROCESSING_FAILED))

    async def handle(self, event: ClientEvent) -> None:
        self.logger.debug("session.event", type=event.type)
        match event:
            case ChatRequest(content=content):
                await self.chat(content)
            case ClearRequest():
                removed = await asyncio.to_thread(self.log.clear)
                self.logger.info("session.cleared", removed=removed)
                await self.send(ClearedEvent())
            case HistoryRequest():
                messages = [message.to_payload() for message in await asyncio.to_thread(self.log.read)]
                await self.send(HistoryEvent(messages=messages))
            case ToolConfirmRequest(tool_name=tool_name, args=args):
                result = execute_tool(tool_name, args)
                self.logger.info("session.tool_confirm", tool=tool_name)
                await self.send(ToolResultEvent(result=result))
            case _:
                assert_never(event)

    async def chat(self, content: str) -> None:
        await asyncio.to_thread(self.log.append, "user", content)
        history = await asyncio.to_thread(self.log.read)
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": self.system_prompt},
            *(message.to_payload() for message in history),
        ]
        tools = tool_definitions()
        self.logger.info("session.chat.start", history_size=len(messages) - 1)

        reply: list[str] = []
        try:
            for step in range(self.max_steps):
                step_text, calls = await self._run_step(messages, tools, reply)
                if not calls:
                    break
                self.logger.debug("session.chat.tool_step", step=step, tools=[call.name for call in calls])
                await self.send(
                    ToolCallsEvent(tools=[ToolInvocation(name=call.name, args=call.arguments) for call in calls])
                )
                results = [self._run_tool_call(call) for call in calls]
                await self.send(ToolResultsEvent(results=results))

                messages.append(
                    {
                        "role": "assistant",
                        "content": step_text or None,
                        "tool_calls": [call.to_message_payload() for call in calls],
                    }
                )
                for call, result in zip(calls, results):
                    messages.append(
                        {
                            "role": "tool",
                            "tool_call_id": call.id,
                            "content": json.dumps(result["result"]),
                        }
                    )
        except CompletionError as exc:
            self.logger.error("session.chat.failed", error=str(exc))
            await self.send(ErrorEvent(message=GENERATION_FAILED))
            return

        response = "".join(reply)
        await asyncio.to_thread(self.log.append, "assistant", response)
        self.logger.info("session.chat.done", response_chars=len(response))
        await self.send(DoneEvent(content=response))

    async def _run_step(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        reply: list[str],
    ) -> tuple[str, list[ToolCallRequest]]:
        step_text: list[str] = []
        calls: list[ToolCallRequest] = []
        async for chunk in self.completion.stream(messages, tools):
            match chunk:
                case TextDelta(text=text):
                    step_text.append(text)
                    reply.append(text)
                    await self.send(StreamEvent(content=text))
                case ToolCallRequest():
                    calls.append(chunk)
        return "".join(step_text), calls

    def _run_tool_call(self, call: ToolCallRequest) -> dict[str, Any]:
        try:
            result = execute_tool(call.name, call.arguments)
        except ToolError as exc:
            self.logger.warning("session.tool.failed", tool=call.name, error=str(exc))
            result = {"error": str(exc)}
        return {
            "toolCallId": call.id,
            "toolName": call.name,
            "args": call.arguments,
            "result": result,
        }
