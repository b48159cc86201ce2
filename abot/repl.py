"""Plain line-mode REPL: prompt_toolkit input, ConsoleSurface output."""

from __future__ import annotations

from typing import Sequence

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.shortcuts import CompleteStyle
from prompt_toolkit.styles import Style
from rich.console import Console

from .commands import SLASH_COMMAND_SPECS, SlashCommandSpec
from .config import HISTORY_FILE
from .controller import SessionController
from .events import EventQueue, ExitRequested, InputSubmitted
from .stream_renderer import drive
from .themes import get_theme

MAX_SLASH_MENU_ITEMS = 16

PTK_STYLE = Style.from_dict({
    "completion-menu": "bg:default",
    "completion-menu.completion": "bg:default #C8D8EE",
    "completion-menu.completion.current": "bg:#1E2834 #E7EEF8",
    "completion-menu.command": "#57DB9C",
    "completion-menu.args": "#9BB0C9",
    "completion-menu.description": "#7AA7E8",
    "scrollbar.background": "bg:default",
    "scrollbar.button": "bg:default",
})


def make_prompt_html() -> HTML:
    prompt = get_theme().PROMPT or "default"
    return HTML(f'<style fg="{prompt}">abot</style><style fg="#66788A"> › </style>')


def _command_sort_key(token: str, spec: SlashCommandSpec, order_map: dict[str, int]):
    lowered = token.lower().lstrip("/")
    command_only = spec.command.lower().lstrip("/")
    if not lowered or command_only.startswith(lowered):
        return (0, 0, order_map[spec.command])

    contains_pos = command_only.find(lowered)
    if contains_pos >= 0:
        return (1, contains_pos, order_map[spec.command])

    haystack = " ".join((spec.description, *spec.keywords)).lower()
    keyword_pos = haystack.find(lowered)
    if keyword_pos >= 0:
        return (2, keyword_pos, order_map[spec.command])
    return None


class SlashCommandCompleter(Completer):
    """Slash-command menu with prefix, substring and keyword matching."""

    def __init__(self, specs: Sequence[SlashCommandSpec] = SLASH_COMMAND_SPECS,
                 max_items: int = MAX_SLASH_MENU_ITEMS):
        self.specs = list(specs)
        self.max_items = max_items
        self.order_map = {spec.command: index for index, spec in enumerate(self.specs)}
        self.usage_width = max(len(spec.usage) for spec in self.specs)

    def _display(self, spec: SlashCommandSpec):
        display = [("class:completion-menu.command", spec.command)]
        if spec.usage != spec.command:
            display.append(("class:completion-menu.args", spec.usage[len(spec.command):]))
        display.append(("", " " * max(2, self.usage_width - len(spec.usage) + 1)))
        display.append(("class:completion-menu.description", spec.description))
        return display

    def get_completions(self, document, complete_event):
        text = document.text_before_cursor.lstrip()
        if not text.startswith("/") or " " in text:
            return

        ranked = []
        for spec in self.specs:
            key = _command_sort_key(text, spec, self.order_map)
            if key is not None:
                ranked.append((key, spec))
        ranked.sort(key=lambda item: item[0])

        for _, spec in ranked[: self.max_items]:
            yield Completion(text=spec.command, start_position=-len(text),
                             display=self._display(spec), display_meta="")


def run_repl(controller: SessionController, events: EventQueue, console: Console,
             tick_interval: float = 0.25) -> None:
    """Read lines until /exit or a double Ctrl-D; each line is driven to completion."""
    HISTORY_FILE.parent.mkdir(parents=True, exist_ok=True)
    session = PromptSession(
        history=FileHistory(str(HISTORY_FILE)),
        multiline=False,
        completer=SlashCommandCompleter(),
        complete_while_typing=True,
        style=PTK_STYLE,
        complete_style=CompleteStyle.COLUMN,
    )

    repl_kb = KeyBindings()

    @repl_kb.add("escape", "enter")
    def _newline(event):
        event.current_buffer.insert_text("\n")

    controller.refresh()
    pending_ctrl_d_exit = False
    while not controller.exited:
        try:
            user_input = session.prompt(make_prompt_html(), key_bindings=repl_kb)
            pending_ctrl_d_exit = False
        except EOFError:
            if pending_ctrl_d_exit:
                events.put(ExitRequested())
                drive(controller, events, tick_interval)
                break
            pending_ctrl_d_exit = True
            console.print("[dim]Press Ctrl-D again to exit.[/dim]")
            continue
        except KeyboardInterrupt:
            continue

        if not user_input.strip():
            continue
        events.put(InputSubmitted(user_input))
        drive(controller, events, tick_interval)

    console.print("[dim]Goodbye![/dim]")
