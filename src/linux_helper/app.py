"""Linux Helper Textual application shell."""

from __future__ import annotations

from pathlib import Path

from textual.app import App, ComposeResult
from textual.widgets import Footer, Header

from linux_helper.config.models import AppSettings
from linux_helper.config.store import SettingsStore
from linux_helper.llm.client import ChatCompletionClient, CompletionClient
from linux_helper.persistence.messages import MessageStore
from linux_helper.runtime_logging import configure_runtime_logging
from linux_helper.widgets.conversation import Conversation


class LinuxHelperApp(App[None]):
    TITLE = "Linux Helper"
    SUB_TITLE = "Linux command assistant"

    BINDINGS = [
        ("ctrl+l", "clear_conversation", "Clear"),
    ]

    CSS = """
    Screen {
        layout: vertical;
    }
    """

    def __init__(
        self,
        *,
        conversation_id: str | None = None,
        settings: AppSettings | None = None,
        store: MessageStore | None = None,
        completion: CompletionClient | None = None,
        log_level: str | None = None,
        log_file: str | Path | None = None,
    ) -> None:
        self.logger = configure_runtime_logging(level=log_level, log_file=log_file)
        self.settings = settings or SettingsStore().load()
        self.store = store or MessageStore()
        self._owns_completion = completion is None
        self.completion = completion or ChatCompletionClient(self.settings.model)
        self.conversation_id = conversation_id or self.settings.server.default_conversation
        self.logger.info(
            "app.initialized",
            conversation_id=self.conversation_id,
            model=self.settings.model.model,
        )
        super().__init__()

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Conversation(
            log=self.store.conversation(self.conversation_id),
            completion=self.completion,
            max_steps=self.settings.model.max_steps,
        )
        yield Footer()

    def on_mount(self) -> None:
        self.theme = self.settings.appearance.theme
        self.logger.info("app.mounted", theme=self.theme)

    async def action_clear_conversation(self) -> None:
        conversation = self.query_one(Conversation)
        await conversation.handle_slash("/clear")

    async def on_unmount(self) -> None:
        self.logger.info("app.exit", conversation_id=self.conversation_id)
        if self._owns_completion and isinstance(self.completion, ChatCompletionClient):
            await self.completion.aclose()
