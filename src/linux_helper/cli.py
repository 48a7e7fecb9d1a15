"""CLI entrypoint for Linux Helper."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import click
from pydantic import ValidationError

from linux_helper.app import LinuxHelperApp
from linux_helper.config.models import AppSettings
from linux_helper.config.store import SettingsStore, parse_setting_value
from linux_helper.llm.client import ChatCompletionClient
from linux_helper.paths import settings_path
from linux_helper.persistence.messages import MessageStore
from linux_helper.runtime_logging import configure_runtime_logging
from linux_helper.server import LinuxHelperServer
from linux_helper.shell.safety import classify
from linux_helper.tools.registry import TOOLS, ToolError, execute_tool
from linux_helper.version import __version__

_db_option = click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Message database path (defaults to the user data directory)",
)


def _store(db_path: Path | None) -> MessageStore:
    return MessageStore(db_path.expanduser().resolve() if db_path else None)


@click.group(invoke_without_command=True, context_settings={"help_option_names": ["-h", "--help"]})
@click.pass_context
def main(ctx: click.Context) -> None:
    """Linux Helper: a chat assistant for Linux commands."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


@main.command()
@click.option("--conversation", "conversation_id", help="Conversation to open")
@click.option("--log-level", help="off, error, warning, info or debug")
@_db_option
def run(conversation_id: str | None, log_level: str | None, db_path: Path | None) -> None:
    """Open the terminal chat UI."""
    app = LinuxHelperApp(
        conversation_id=conversation_id,
        store=_store(db_path),
        log_level=log_level,
    )
    app.run()


@main.command()
@click.option("--host", help="Bind address (defaults to settings)")
@click.option("--port", type=int, help="Bind port (defaults to settings)")
@click.option("--log-level", help="off, error, warning, info or debug")
@_db_option
def serve(host: str | None, port: int | None, log_level: str | None, db_path: Path | None) -> None:
    """Serve the chat agent over WebSocket."""
    configure_runtime_logging(level=log_level)
    settings = SettingsStore().load()
    bind_host = host or settings.server.host
    bind_port = port if port is not None else settings.server.port
    click.echo(f"Listening on ws://{bind_host}:{bind_port}/agent/{settings.server.agent_name}/<conversation>")
    try:
        asyncio.run(_serve(settings, _store(db_path), bind_host, bind_port))
    except KeyboardInterrupt:
        click.echo("Stopped")


async def _serve(settings: AppSettings, store: MessageStore, host: str, port: int) -> None:
    completion = ChatCompletionClient(settings.model)
    server = LinuxHelperServer(settings=settings, store=store, completion=completion)
    try:
        await server.serve_forever(host, port)
    finally:
        await completion.aclose()


@main.command()
@click.argument("command")
@click.option("--json", "as_json", is_flag=True, help="Print the full check result as JSON")
@click.pass_context
def check(ctx: click.Context, command: str, as_json: bool) -> None:
    """Check a shell command for dangerous patterns.

    Exits with status 1 when any risk was found.
    """
    result = classify(command)
    if as_json:
        click.echo(json.dumps(result.to_payload(), indent=2, ensure_ascii=False))
    else:
        click.echo(result.guidance)
    if result.has_danger:
        ctx.exit(1)


@main.command()
@click.argument("tool_name", metavar="TOOL", type=click.Choice(sorted(TOOLS)))
@click.option("--arg", "raw_args", multiple=True, metavar="KEY=VALUE", help="Tool argument")
@click.option("--json", "as_json", is_flag=True, help="Print the full tool payload as JSON")
def prompt(tool_name: str, raw_args: tuple[str, ...], as_json: bool) -> None:
    """Print the instruction a tool hands to the model."""
    arguments: dict[str, str] = {}
    for raw in raw_args:
        key, sep, value = raw.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {raw!r}", param_hint="--arg")
        arguments[key] = value

    try:
        payload = execute_tool(tool_name, arguments)
    except ToolError as exc:
        raise click.ClickException(str(exc)) from exc

    if as_json:
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        click.echo(payload["instruction"])


@main.command()
@click.option("--conversation", "conversation_id", help="Conversation id (defaults to settings)")
@click.option("--clear", is_flag=True, help="Delete the conversation instead of printing it")
@click.option("--json", "as_json", is_flag=True)
@_db_option
def history(conversation_id: str | None, clear: bool, as_json: bool, db_path: Path | None) -> None:
    """Print or clear a stored conversation."""
    conversation_id = conversation_id or SettingsStore().load().server.default_conversation
    log = _store(db_path).conversation(conversation_id)

    if clear:
        removed = log.clear()
        click.echo(f"Removed {removed} message(s) from {conversation_id}")
        return

    messages = log.read()
    if as_json:
        click.echo(json.dumps([message.to_payload() for message in messages], indent=2, ensure_ascii=False))
        return
    for message in messages:
        click.echo(f"{message.role}: {message.content}")


@main.group()
def settings() -> None:
    """Inspect or change the settings file."""


@settings.command("path")
def settings_path_command() -> None:
    """Print settings file path."""
    click.echo(str(settings_path()))


@settings.command("show")
def settings_show() -> None:
    """Print the current settings as JSON."""
    click.echo(json.dumps(SettingsStore().load().model_dump(mode="json"), indent=2, sort_keys=True))


@settings.command("set")
@click.argument("key")
@click.argument("value")
def settings_set(key: str, value: str) -> None:
    """Set a dotted KEY such as server.port or model.model."""
    try:
        SettingsStore().update(key, parse_setting_value(value))
    except KeyError as exc:
        raise click.ClickException(str(exc.args[0])) from exc
    except ValidationError as exc:
        raise click.ClickException(f"Invalid value for {key}: {exc.errors()[0]['msg']}") from exc
    click.echo(f"{key} = {value}")


@main.command()
def about() -> None:
    """Show version and project summary."""
    payload = {
        "name": "linux-helper",
        "version": __version__,
        "description": "Chat assistant for Linux commands with a command danger checker",
        "tools": sorted(TOOLS),
    }
    click.echo(json.dumps(payload, indent=2))


if __name__ == "__main__":
    main()
