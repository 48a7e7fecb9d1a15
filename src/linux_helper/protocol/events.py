"""Typed client/agent events carried over the chat transport.

Every frame is a JSON object discriminated by its ``type`` field.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class ProtocolError(Exception):
    pass


class _Event(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


# Client -> agent


class ChatRequest(_Event):
    type: Literal["chat"] = "chat"
    content: str


class ClearRequest(_Event):
    type: Literal["clear"] = "clear"


class HistoryRequest(_Event):
    type: Literal["get_history"] = "get_history"


class ToolConfirmRequest(_Event):
    type: Literal["tool_confirm"] = "tool_confirm"
    tool_name: str = Field(alias="toolName")
    args: dict[str, Any] = Field(default_factory=dict)


ClientEvent = Annotated[
    Union[ChatRequest, ClearRequest, HistoryRequest, ToolConfirmRequest],
    Field(discriminator="type"),
]


# Agent -> client


class HistoryEvent(_Event):
    type: Literal["history"] = "history"
    messages: list[dict[str, str]]


class StreamEvent(_Event):
    type: Literal["stream"] = "stream"
    content: str


class DoneEvent(_Event):
    type: Literal["done"] = "done"
    content: str


class ErrorEvent(_Event):
    type: Literal["error"] = "error"
    message: str


class ClearedEvent(_Event):
    type: Literal["cleared"] = "cleared"


class ToolInvocation(_Event):
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolCallsEvent(_Event):
    type: Literal["tool_calls"] = "tool_calls"
    tools: list[ToolInvocation]


class ToolResultsEvent(_Event):
    type: Literal["tool_results"] = "tool_results"
    results: list[dict[str, Any]]


class ToolResultEvent(_Event):
    type: Literal["tool_result"] = "tool_result"
    result: dict[str, Any]


ServerEvent = Annotated[
    Union[
        HistoryEvent,
        StreamEvent,
        DoneEvent,
        ErrorEvent,
        ClearedEvent,
        ToolCallsEvent,
        ToolResultsEvent,
        ToolResultEvent,
    ],
    Field(discriminator="type"),
]

_client_adapter: TypeAdapter[ClientEvent] = TypeAdapter(ClientEvent)


def _load_object(raw: str | bytes) -> dict[str, Any]:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ProtocolError(f"Malformed frame: {exc}") from exc
    if not isinstance(data, dict):
        raise ProtocolError("Frame must be a JSON object")
    return data


def parse_client_event(raw: str | bytes) -> ClientEvent:
    data = _load_object(raw)
    try:
        return _client_adapter.validate_python(data)
    except ValidationError as exc:
        raise ProtocolError(f"Invalid client event: {exc}") from exc


def encode_event(event: BaseModel) -> str:
    return event.model_dump_json(by_alias=True)
