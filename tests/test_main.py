"""Tests for the click entry points."""

import logging

import pytest
from click.testing import CliRunner

from abot import __version__, main
from abot.errors import StreamError
from abot.models import Conversation, Message, Role
from abot.session import SessionStore

from conftest import ScriptedSource, text_deltas


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    root = logging.getLogger("abot")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


@pytest.fixture
def cli_runner():
    return CliRunner()


class TestCli:

    def test_version(self, cli_runner):
        result = cli_runner.invoke(main.cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_config_command(self, cli_runner, config_yaml_file):
        result = cli_runner.invoke(main.cli, ["config"])
        assert result.exit_code == 0
        assert "local → openai/model" in result.output
        assert "Models" in result.output

    def test_ask_streams_answer(self, cli_runner, config_yaml_file, tmp_dir, monkeypatch):
        source = ScriptedSource(text_deltas("The answer ", "is 42."))
        monkeypatch.setattr(main, "LiteLLMStreamSource", lambda: source)

        result = cli_runner.invoke(main.cli, ["ask", "what", "is", "it", "-d", str(tmp_dir)])

        assert result.exit_code == 0
        assert "The answer is 42." in result.output
        assert source.requests[0].messages[-1] == {"role": "user", "content": "what is it"}

    def test_ask_with_model_override(self, cli_runner, config_yaml_file, tmp_dir, monkeypatch):
        source = ScriptedSource(text_deltas("ok"))
        monkeypatch.setattr(main, "LiteLLMStreamSource", lambda: source)

        result = cli_runner.invoke(main.cli, ["ask", "hi", "-m", "gpt-4o", "-d", str(tmp_dir)])

        assert result.exit_code == 0
        assert source.requests[0].model == "openai/gpt-4o"

    def test_ask_failure_exits_nonzero(self, cli_runner, config_yaml_file, tmp_dir, monkeypatch):
        source = ScriptedSource(open_error=StreamError("connection", "Cannot connect."))
        monkeypatch.setattr(main, "LiteLLMStreamSource", lambda: source)

        result = cli_runner.invoke(main.cli, ["ask", "hi", "-d", str(tmp_dir)])

        assert result.exit_code == 1
        assert "Cannot connect." in result.output


class TestHelpers:

    def test_raw_model_id_becomes_cli_preset(self, config_yaml_file, tmp_dir):
        config = main._load_config(str(tmp_dir), "openai/custom-model",
                                   api_base="http://localhost:9000/v1")
        assert config.active_model == "_cli"
        preset = config.get_active_preset()
        assert preset.model == "openai/custom-model"
        assert preset.api_base == "http://localhost:9000/v1"

    def test_model_switch_never_writes_command_line_secrets(self, config_yaml_file, tmp_dir):
        config = main._load_config(str(tmp_dir), "openai/raw-model", api_key="sk-cli-secret")
        assert config.set_active_model("gpt-4o")
        config.persist_active_model("gpt-4o")

        text = config_yaml_file.read_text()
        assert "active-model: gpt-4o" in text
        assert "_cli" not in text
        assert "sk-cli-secret" not in text

    def test_read_history(self, abot_home):
        history = main.HISTORY_FILE
        abot_home.mkdir(parents=True, exist_ok=True)
        history.write_text("\n# 2024-01-01\n+first\n\n# 2024-01-02\n+two\n+lines\n",
                           encoding="utf-8")
        assert main._read_history() == ["two\nlines", "first"]

    def test_recovered_snapshot_stays_on_disk(self, abot_home):
        store = SessionStore(abot_home / "sessions", abot_home / "recovery")
        earlier = Conversation.start("Be brief.")
        earlier.add(Message.of(Role.USER, "q"))
        path = store.write_recovery(earlier)

        restored = main._recovered(store, earlier.id)

        assert restored.dirty
        assert [m.text for m in restored.messages] == ["Be brief.", "q"]
        assert path.exists()
