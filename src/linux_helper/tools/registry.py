"""Tool descriptors exposed to the model and local dispatch."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel, Field, ValidationError

from linux_helper.tools import prompts


class ToolError(Exception):
    pass


class UnknownToolError(ToolError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class ToolArgumentError(ToolError):
    pass


class CommandArgs(BaseModel):
    command: str = Field(description="The full shell command to explain")


class SuggestArgs(BaseModel):
    task: str = Field(description="The task the user wants to accomplish")
    distro: str | None = Field(
        default=None,
        description="Optional: specific Linux distribution (ubuntu, centos, arch, etc.)",
    )


class FixErrorArgs(BaseModel):
    error: str = Field(description="The error message the user encountered")
    context: str | None = Field(
        default=None,
        description="Optional: what the user was trying to do when the error occurred",
    )


class ManPageArgs(BaseModel):
    command: str = Field(description="The command to get man page info for")


class DangerCheckArgs(BaseModel):
    command: str = Field(description="The command to check for safety")


@dataclass(frozen=True, slots=True)
class ToolSpec:
    name: str
    description: str
    args_model: type[BaseModel]
    builder: Callable[..., dict[str, Any]]

    def definition(self) -> dict[str, Any]:
        schema = self.args_model.model_json_schema()
        schema.pop("title", None)
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": schema,
            },
        }

    def run(self, arguments: dict[str, Any] | None) -> dict[str, Any]:
        try:
            parsed = self.args_model.model_validate(arguments or {})
        except ValidationError as exc:
            raise ToolArgumentError(f"Invalid arguments for {self.name}: {exc}") from exc
        return self.builder(**parsed.model_dump())


TOOLS: dict[str, ToolSpec] = {
    tool.name: tool
    for tool in (
        ToolSpec(
            name="explainCommand",
            description=(
                "Break down a Linux/shell command and explain each part including flags, "
                "arguments, and what the command does. Use this when a user asks about "
                "understanding a command."
            ),
            args_model=CommandArgs,
            builder=prompts.explain_command,
        ),
        ToolSpec(
            name="suggestCommand",
            description=(
                "Suggest appropriate Linux commands to accomplish a specific task. "
                "Use this when a user asks how to do something in Linux."
            ),
            args_model=SuggestArgs,
            builder=prompts.suggest_command,
        ),
        ToolSpec(
            name="fixError",
            description=(
                "Analyze a Linux error message and provide troubleshooting steps. "
                "Use this when a user encounters an error."
            ),
            args_model=FixErrorArgs,
            builder=prompts.fix_error,
        ),
        ToolSpec(
            name="manPage",
            description=(
                "Provide a summarized man page for a Linux command, including common "
                "options and examples. Use this for quick command reference."
            ),
            args_model=ManPageArgs,
            builder=prompts.man_page,
        ),
        ToolSpec(
            name="dangerCheck",
            description=(
                "Analyze a command for potential dangers and provide safety warnings. "
                "Use this for commands that could cause data loss or system damage."
            ),
            args_model=DangerCheckArgs,
            builder=prompts.danger_check,
        ),
    )
}


def tool_definitions() -> list[dict[str, Any]]:
    return [tool.definition() for tool in TOOLS.values()]


def execute_tool(name: str, arguments: dict[str, Any] | None) -> dict[str, Any]:
    tool = TOOLS.get(name)
    if tool is None:
        raise UnknownToolError(name)
    return tool.run(arguments)
