"""Conversation widget: timeline, prompt and quick actions."""

from __future__ import annotations

from typing import assert_never

from rich.markdown import Markdown
from rich.markup import escape
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import Button, Input, RichLog, Static

from linux_helper.agent.session import ChatSession
from linux_helper.llm.client import CompletionClient
from linux_helper.persistence.messages import ConversationLog
from linux_helper.protocol.events import (
    ChatRequest,
    ClearedEvent,
    ClearRequest,
    DoneEvent,
    ErrorEvent,
    HistoryEvent,
    HistoryRequest,
    ServerEvent,
    StreamEvent,
    ToolCallsEvent,
    ToolResultEvent,
    ToolResultsEvent,
)
from linux_helper.runtime_logging import get_runtime_logger
from linux_helper.shell.safety import classify

QUICK_ACTIONS: tuple[tuple[str, str], ...] = (
    ("Explain ls -la", "Explain this command: ls -la"),
    ("Find files", "How do I find all .log files in /var/log?"),
    ("Check disk space", "What command shows disk space usage?"),
    ("Process management", "How do I find and kill a process by name?"),
)

_HELP = "[b]/help[/b], [b]/clear[/b], [b]/check <command>[/b]"


class Conversation(Vertical):
    DEFAULT_CSS = """
    Conversation {
        height: 1fr;
    }

    #timeline {
        height: 1fr;
        border: round $surface-lighten-2;
        overflow-y: auto;
    }

    #quick-actions {
        height: auto;
    }

    #quick-actions Button {
        margin-right: 1;
    }

    #streaming {
        height: auto;
        max-height: 50%;
        padding: 0 1;
        border-left: thick $success;
        display: none;
    }

    #status {
        height: 1;
        color: $text-muted;
    }
    """

    def __init__(
        self,
        *,
        log: ConversationLog,
        completion: CompletionClient,
        max_steps: int,
    ) -> None:
        self.session = ChatSession(
            log=log,
            completion=completion,
            send=self._on_agent_event,
            max_steps=max_steps,
        )
        self.logger = get_runtime_logger()
        self.timeline_entries: list[str] = []
        self._streamed: list[str] = []
        self._busy = False
        super().__init__()

    def compose(self) -> ComposeResult:
        yield RichLog(id="timeline", wrap=True, markup=True, highlight=False)
        yield Static(id="streaming")
        with Horizontal(id="quick-actions"):
            for index, (label, _prompt) in enumerate(QUICK_ACTIONS):
                yield Button(label, id=f"quick-{index}")
        yield Static("idle", id="status")
        yield Input(placeholder="Ask about a Linux command, or /help", id="prompt")

    async def on_mount(self) -> None:
        self.logger.info("conversation.mounted", conversation_id=self.session.conversation_id)
        await self.session.handle(HistoryRequest())
        self.query_one("#prompt", Input).focus()

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        prompt = event.value.strip()
        event.input.value = ""
        if not prompt:
            return

        if prompt.startswith("/"):
            await self.handle_slash(prompt)
            return

        self.submit(prompt)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id or ""
        if not button_id.startswith("quick-"):
            return
        _label, prompt = QUICK_ACTIONS[int(button_id.removeprefix("quick-"))]
        self.submit(prompt)

    def submit(self, prompt: str) -> None:
        if self._busy:
            self._write("[yellow]Still answering the previous message[/yellow]")
            return
        self._write(f"[bold cyan]you:[/bold cyan] {escape(prompt)}", plain=f"you: {prompt}")
        self.run_worker(self._send_chat(prompt), group="chat", exclusive=True, exit_on_error=False)

    async def _send_chat(self, prompt: str) -> None:
        self._set_busy(True)
        try:
            await self.session.handle(ChatRequest(content=prompt))
        finally:
            self._set_busy(False)

    async def handle_slash(self, prompt: str) -> None:
        command, _, rest = prompt.partition(" ")
        self.logger.debug("conversation.slash", command=command)

        if command == "/help":
            self._write(_HELP)
        elif command == "/clear":
            await self.session.handle(ClearRequest())
        elif command == "/check":
            target = rest.strip()
            if not target:
                self._write("[yellow]Usage: /check <command>[/yellow]")
                return
            self._show_check(target)
        else:
            self._write(f"[yellow]Unknown slash command:[/yellow] {escape(command)}")

    def _show_check(self, command: str) -> None:
        result = classify(command)
        self._write(f"[bold]$ {escape(command)}[/bold]", plain=f"$ {command}")
        if not result.has_danger:
            self._write("[green]No obvious dangers detected[/green]", plain="No obvious dangers detected")
            return
        for finding in result.findings:
            colour = "red" if finding.risk_level == "critical" else "yellow"
            line = f"[{finding.risk_level.upper()}] {finding.reason}"
            self._write(f"[{colour}]{escape(line)}[/{colour}]", plain=line)

    async def _on_agent_event(self, event: ServerEvent) -> None:
        match event:
            case HistoryEvent(messages=messages):
                for message in messages:
                    self._write_message(message["role"], message["content"])
            case StreamEvent(content=content):
                self._streamed.append(content)
                self._show_partial()
            case DoneEvent(content=content):
                self._end_partial()
                self._write_message("assistant", content)
            case ErrorEvent(message=message):
                self._end_partial()
                self._write(f"[red]Error:[/red] {escape(message)}", plain=f"Error: {message}")
            case ClearedEvent():
                self.query_one("#timeline", RichLog).clear()
                self.timeline_entries.clear()
                self._write("[dim]Conversation cleared[/dim]", plain="Conversation cleared")
            case ToolCallsEvent(tools=tools):
                names = ", ".join(tool.name for tool in tools)
                self._write(f"[dim]tools: {escape(names)}[/dim]", plain=f"tools: {names}")
            case ToolResultsEvent() | ToolResultEvent():
                pass
            case _:
                assert_never(event)

    @property
    def streaming_text(self) -> str:
        """The assistant reply received so far for the message in flight."""
        return "".join(self._streamed)

    def _show_partial(self) -> None:
        partial = self.query_one("#streaming", Static)
        partial.update(Markdown(self.streaming_text))
        partial.display = True
        self._set_status(f"answering... ({len(self.streaming_text)} chars)")

    def _end_partial(self) -> None:
        self._streamed.clear()
        partial = self.query_one("#streaming", Static)
        partial.update("")
        partial.display = False

    def _write_message(self, role: str, content: str) -> None:
        timeline = self.query_one("#timeline", RichLog)
        if role == "user":
            self._write(f"[bold cyan]you:[/bold cyan] {escape(content)}", plain=f"you: {content}")
            return
        timeline.write("[bold green]helper:[/bold green]")
        timeline.write(Markdown(content))
        self.timeline_entries.append(f"helper: {content}")

    def _write(self, markup: str, *, plain: str | None = None) -> None:
        self.query_one("#timeline", RichLog).write(markup)
        self.timeline_entries.append(plain if plain is not None else markup)

    def _set_busy(self, busy: bool) -> None:
        self._busy = busy
        self._set_status("answering..." if busy else "idle")

    def _set_status(self, text: str) -> None:
        self.query_one("#status", Static).update(text)
