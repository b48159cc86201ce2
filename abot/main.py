"""
abot: terminal chat client with live markdown rendering.

Commands: abot run | abot ask "..." | abot config
"""

import io
import os
import sys
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import CLI_PRESET, CONFIG_FILE, HISTORY_FILE, Config, ModelPreset
from .controller import SessionController
from .events import EventQueue, InputSubmitted, LogRecorded
from .llm import LiteLLMStreamSource
from .logger import setup_logger
from .models import Conversation, MessageStatus, Role
from .render import MarkdownRenderer, SyntaxHighlighter, TerminalCapabilities
from .session import SessionStore
from .stream_renderer import ConsoleSurface, drive
from .themes import get_theme, set_theme

console = Console()


def _banner() -> str:
    accent = get_theme().ACCENT or "bold"
    return f"[bold {accent}]abot[/bold {accent}] [dim]v{__version__} · streaming chat[/dim]"


def _load_config(project_dir: str, model: Optional[str], api_base: Optional[str] = None,
                 api_key: Optional[str] = None) -> Config:
    config = Config.load(project_dir)
    if model:
        if model in config.models:
            config.active_model = model
        else:
            config.models[CLI_PRESET] = ModelPreset(
                name=CLI_PRESET, provider="openai", model=model,
                api_base=api_base, api_key=api_key or "not-needed",
            )
            config.active_model = CLI_PRESET
    preset = config.get_active_preset()
    if api_key:
        preset.api_key = api_key
    if api_base:
        preset.api_base = api_base
    set_theme(config.theme)
    return config


def build_renderer(config: Config, width: int, terminal: Console) -> MarkdownRenderer:
    """Renderer laying out lines at ``width`` with ``terminal``'s capabilities."""
    layout = Console(file=io.StringIO(), width=width, color_system="truecolor",
                     force_terminal=True, legacy_windows=False)
    return MarkdownRenderer(
        layout,
        SyntaxHighlighter(config.syntax_theme),
        theme=get_theme(),
        capabilities=TerminalCapabilities.from_console(terminal),
        width=width,
    )


def _recovered(store: SessionStore, recover_id: Optional[str]) -> Optional[Conversation]:
    if not recover_id:
        return None
    conversation = store.load_recovery(recover_id)
    if conversation is None:
        console.print(f"[red]No recovery snapshot named '{recover_id}'.[/red]")
        sys.exit(1)
    # the snapshot stays on disk until a full save or a newer snapshot replaces it
    return conversation


def _read_history(limit: int = 200) -> list:
    """Newest-first entries of the prompt_toolkit history file."""
    if not HISTORY_FILE.exists():
        return []
    entries = []
    current: list = []
    with open(HISTORY_FILE, "r", encoding="utf-8", errors="replace") as f:
        for line in f:
            if line.startswith("+"):
                current.append(line[1:].rstrip("\n"))
            elif current:
                entries.append("\n".join(current))
                current = []
    if current:
        entries.append("\n".join(current))
    return list(reversed(entries))[:limit]


@click.group(invoke_without_command=True)
@click.version_option(__version__, prog_name="abot")
@click.pass_context
def cli(ctx):
    """abot: chat with LLMs in your terminal."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


@cli.command()
@click.option("--model", "-m", default=None, help="Model preset name (or raw model id)")
@click.option("--api-key", "-k", default=None, help="API key override")
@click.option("--api-base", "-b", default=None, help="API base override")
@click.option("--project-dir", "-d", default=".", help="Directory holding .abot.yml")
@click.option("--plain", is_flag=True, help="Line-mode REPL instead of the full-screen UI")
@click.option("--recover", "recover_id", default=None, help="Resume a recovery snapshot by id")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr (plain mode)")
def run(model, api_key, api_base, project_dir, plain, recover_id, verbose):
    """Start an interactive session."""
    os.environ.setdefault("PROMPT_TOOLKIT_NO_CPR", "1")
    config = _load_config(project_dir, model, api_base, api_key)
    store = SessionStore()
    conversation = _recovered(store, recover_id)
    events = EventQueue()
    source = LiteLLMStreamSource()

    if plain or not console.is_terminal:
        setup_logger(level="debug" if verbose else config.log_level,
                     console_level="debug" if verbose else "warning")
        console.print(_banner())
        _print_recoveries(store)
        surface = ConsoleSurface(console)
        controller = SessionController(
            config, source, surface, events=events, store=store, conversation=conversation,
            renderer=build_renderer(config, console.width, console),
            width=console.width, height=console.height,
        )
        from .repl import run_repl

        try:
            run_repl(controller, events, console, config.tick_interval)
        finally:
            surface.close()
        return

    setup_logger(level=config.log_level, console=False,
                 pane_post=lambda level, text: events.put(LogRecorded(level, text)))

    def make_controller(surface, width, height):
        controller = SessionController(
            config, source, surface, events=events, store=store, conversation=conversation,
            renderer=build_renderer(config, width, console), width=width, height=height,
        )
        controller.notice(f"abot v{__version__} · {config.active_model} · /help for commands")
        return controller

    from .tui import AbotApp

    app = AbotApp(make_controller, events, tick_interval=config.tick_interval,
                  history=_read_history())
    app.run()


def _print_recoveries(store: SessionStore) -> None:
    recoveries = store.list_recoveries(limit=3)
    if not recoveries:
        return
    console.print("[dim]Unsaved conversations (resume with --recover ID):[/dim]")
    for info in recoveries:
        console.print(f"[dim]  {info['id']}  {info['saved_at']}  {info['messages']} messages[/dim]")


@cli.command()
@click.argument("message", nargs=-1, required=True)
@click.option("--model", "-m", default=None)
@click.option("--project-dir", "-d", default=".")
@click.option("--web", is_flag=True, help="Augment the question with web search results")
def ask(message, model, project_dir, web):
    """Stream a single answer and exit."""
    config = _load_config(project_dir, model)
    setup_logger(level=config.log_level, console_level="warning")
    text = " ".join(message)
    if web and "@web" not in text:
        text = f"{text} @web"

    events = EventQueue()
    surface = ConsoleSurface(console)
    controller = SessionController(
        config, LiteLLMStreamSource(), surface, events=events,
        renderer=build_renderer(config, console.width, console),
        width=console.width, height=console.height,
    )
    events.put(InputSubmitted(text))
    try:
        drive(controller, events, config.tick_interval)
    finally:
        surface.close()
        controller.runner.shutdown(wait=False)

    answer = controller.conversation.last(Role.ASSISTANT)
    if answer is None or answer.notice or answer.status is not MessageStatus.COMPLETE:
        sys.exit(1)


@cli.command("config")
def config_cmd():
    """Show configuration."""
    cfg = Config.load()
    set_theme(cfg.theme)

    table = Table(show_header=False, box=None, padding=(0, 2))
    for key, value in cfg.summary().items():
        table.add_row(f"[dim]{key}[/dim]", str(value))
    console.print(table)

    models = Table(title="Models", title_justify="left")
    for column in ("", "name", "model", "api base", "key", "description"):
        models.add_column(column)
    for info in cfg.list_models():
        models.add_row("*" if info["active"] else "", info["name"], info["model"],
                       info["api_base"], "set" if info["key"] else "-", info["desc"])
    console.print(models)
    console.print(f"[dim]Edit {CONFIG_FILE} to change defaults.[/dim]")


if __name__ == "__main__":
    cli()
