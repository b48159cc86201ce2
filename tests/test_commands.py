"""Tests for slash-command interpretation."""

import pytest

from abot.commands import (
    HELP_TEXT, SLASH_COMMANDS, CommandNotice, Exit, ListModels, Save, SendMessage,
    SetLogLevel, ShowHelp, SwitchModel, ToggleRaw, interpret,
)
from abot.repl import SlashCommandCompleter
from prompt_toolkit.document import Document


class TestInterpret:

    @pytest.mark.parametrize("line, expected", [
        ("/model gpt-4o", SwitchModel("gpt-4o")),
        ("/model", ListModels()),
        ("/log DEBUG", SetLogLevel("debug")),
        ("/save", Save("last")),
        ("/saveall", Save("all")),
        ("/raw", ToggleRaw()),
        ("/exit", Exit()),
        ("/quit", Exit()),
        ("/help", ShowHelp()),
        ("/", ShowHelp()),
    ])
    def test_commands(self, line, expected):
        assert interpret(line) == expected

    def test_plain_message(self):
        assert interpret("hello there") == SendMessage("hello there")

    def test_message_keeps_original_text(self):
        assert interpret("  indented\nsecond line ") == SendMessage("  indented\nsecond line ")

    @pytest.mark.parametrize("line", ["", "   ", "\n"])
    def test_blank_is_ignored(self, line):
        assert interpret(line) is None

    def test_web_marker(self):
        action = interpret("latest news @web")
        assert action == SendMessage("latest news @web", web=True)

    def test_web_marker_needs_word_boundary(self):
        assert interpret("mail me@website.com").web is False

    def test_web_marker_inside_command_is_argument(self):
        assert interpret("/model @web") == SwitchModel("@web")

    def test_unknown_command(self):
        action = interpret("/foo")
        assert isinstance(action, CommandNotice)
        assert action.unknown
        assert "Unknown command: /foo" in action.text

    def test_unique_prefix_resolves(self):
        assert interpret("/mod x") == SwitchModel("x")
        assert interpret("/r") == ToggleRaw()

    def test_ambiguous_prefix_is_unknown(self):
        # /save and /saveall
        assert isinstance(interpret("/sa"), CommandNotice)

    def test_bad_log_level(self):
        action = interpret("/log verbose")
        assert isinstance(action, CommandNotice)
        assert "debug|info|warning|error" in action.text

    def test_extra_arguments_show_usage(self):
        action = interpret("/save now please")
        assert action == CommandNotice("Usage: /save")

    def test_help_lists_every_command(self):
        for command in SLASH_COMMANDS:
            assert command in HELP_TEXT
        assert "@web" in HELP_TEXT


class TestCompleter:

    def _complete(self, text):
        completer = SlashCommandCompleter()
        return [c.text for c in completer.get_completions(Document(text), None)]

    def test_prefix_first(self):
        assert self._complete("/sa")[:2] == ["/save", "/saveall"]

    def test_keyword_match(self):
        assert "/exit" in self._complete("/quit")

    def test_no_completion_for_messages(self):
        assert self._complete("hello") == []

    def test_no_completion_after_argument(self):
        assert self._complete("/model gp") == []
