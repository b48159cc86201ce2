"""Tests for configuration loading, validation and serialization."""

import yaml

from abot import config as config_module
from abot.config import Config, ModelPreset


class TestConfigLoad:
    """Config.load() from YAML files."""

    def test_load_from_yaml(self, config_yaml_file, tmp_dir):
        config = Config.load(str(tmp_dir))
        assert config.active_model == "local"
        assert config.temperature == 0.2
        assert config.max_tokens == 512
        assert config.initial_prompt == "You are a test assistant."
        assert config.web_result_limit == 5
        assert config._config_source == str(config_yaml_file)

    def test_load_models(self, config):
        preset = config.models["local"]
        assert isinstance(preset, ModelPreset)
        assert preset.model == "openai/model"
        assert preset.api_base == "http://localhost:8080/v1"
        assert config.models["gpt-4o"].api_key == "sk-test"

    def test_defaults_written_on_first_run(self, tmp_dir):
        config = Config.load(str(tmp_dir))
        assert set(config.models) == {"deepseek", "gpt-4o", "llamacpp", "ollama"}
        assert config.active_model == "llamacpp"
        assert config_module.CONFIG_FILE.exists()

    def test_global_config_used_without_project_file(self, tmp_dir, sample_config_data):
        config_module.CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        with open(config_module.CONFIG_FILE, "w") as f:
            yaml.dump(sample_config_data, f)
        config = Config.load(str(tmp_dir))
        assert config.active_model == "local"
        assert config._config_source == str(config_module.CONFIG_FILE)

    def test_broken_yaml_falls_back_to_defaults(self, tmp_dir):
        (tmp_dir / ".abot.yml").write_text("models: [unclosed\n")
        config = Config.load(str(tmp_dir))
        assert "llamacpp" in config.models
        # the broken file is not overwritten
        assert (tmp_dir / ".abot.yml").read_text() == "models: [unclosed\n"

    def test_out_of_range_values_are_clamped(self, tmp_dir, sample_config_data):
        sample_config_data.update({"temperature": 9, "max-tokens": "lots", "log-level": "loud",
                                   "theme": "neon", "tick-interval": 0})
        with open(tmp_dir / ".abot.yml", "w") as f:
            yaml.dump(sample_config_data, f)
        config = Config.load(str(tmp_dir))
        assert config.temperature == 2.0
        assert config.max_tokens == 2000
        assert config.log_level == "info"
        assert config.theme == "github_dark"
        assert config.tick_interval == 0.05

    def test_env_overrides(self, config_yaml_file, tmp_dir, monkeypatch):
        monkeypatch.setenv("ABOT_MODEL", "gpt-4o")
        monkeypatch.setenv("ABOT_LOG_LEVEL", "DEBUG")
        config = Config.load(str(tmp_dir))
        assert config.active_model == "gpt-4o"
        assert config.log_level == "debug"


class TestModelPreset:

    def test_llm_kwargs_use_chat_defaults(self, config):
        kwargs = config.models["local"].get_llm_kwargs(config)
        assert kwargs == {
            "model": "openai/model", "temperature": 0.2, "max_tokens": 512, "stream": True,
            "api_base": "http://localhost:8080/v1", "api_key": "not-needed",
        }

    def test_preset_overrides_win(self, config):
        preset = config.models["local"]
        preset.temperature = 0.9
        assert preset.get_llm_kwargs(config)["temperature"] == 0.9

    def test_api_key_from_env(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        preset = ModelPreset(name="x", provider="openai", model="openai/gpt-4o")
        assert preset.resolve_api_key() == "sk-env"

    def test_api_key_env_name(self, monkeypatch):
        monkeypatch.setenv("MY_KEY", "secret")
        preset = ModelPreset(name="x", provider="custom", model="m", api_key_env="MY_KEY")
        assert preset.resolve_api_key() == "secret"


class TestConfigSave:

    def test_switch_model_is_in_memory(self, config, config_yaml_file, tmp_dir):
        assert config.set_active_model("gpt-4o")
        assert config.active_model == "gpt-4o"
        assert Config.load(str(tmp_dir)).active_model == "local"

    def test_persist_active_model(self, config, config_yaml_file, tmp_dir):
        config.set_active_model("gpt-4o")
        assert config.persist_active_model("gpt-4o") == config_yaml_file
        assert Config.load(str(tmp_dir)).active_model == "gpt-4o"

    def test_persist_rewrites_only_active_model(self, config, config_yaml_file, monkeypatch):
        monkeypatch.setenv("ABOT_THEME", "light")
        config._apply_env()
        config.models["gpt-4o"].api_key = "sk-runtime"
        config.temperature = 1.5

        config.persist_active_model("gpt-4o")

        with open(config_yaml_file) as f:
            data = yaml.safe_load(f)
        assert data["active-model"] == "gpt-4o"
        assert data["theme"] == "github_dark"
        assert data["temperature"] == 0.2
        assert data["models"]["gpt-4o"]["api-key"] == "sk-test"

    def test_command_line_preset_is_not_persisted(self, config, config_yaml_file):
        before = config_yaml_file.read_text()
        assert config.persist_active_model(config_module.CLI_PRESET) is None
        assert config_yaml_file.read_text() == before

    def test_switch_unknown_model(self, config):
        assert not config.set_active_model("nope")
        assert config.active_model == "local"

    def test_save_round_trips_models(self, config, tmp_path):
        target = tmp_path / "out.yml"
        config.save(str(target))
        with open(target) as f:
            data = yaml.safe_load(f)
        assert data["active-model"] == "local"
        assert data["models"]["gpt-4o"]["api-key"] == "sk-test"
        assert "api-key-env" not in data["models"]["gpt-4o"]

    def test_summary_and_listing(self, config):
        summary = config.summary()
        assert summary["Active model"] == "local → openai/model"
        names = {info["name"]: info for info in config.list_models()}
        assert names["local"]["active"]
        assert not names["gpt-4o"]["active"]
