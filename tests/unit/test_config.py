"""Tests for config loading: YAML file, environment fallbacks and fatal errors."""

from __future__ import annotations

from pathlib import Path

import pytest

from holloway.__main__ import _load_config_or_exit
from holloway.config import DEFAULT_BASE_URL, load_config

_ENV_VARS = (
    "HOLLOWAY_BASE_URL",
    "HOLLOWAY_API_KEY",
    "HOLLOWAY_MODEL",
    "HOLLOWAY_SYSTEM_PROMPT",
    "HOLLOWAY_VERIFY_SSL",
    "HOLLOWAY_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestEnvironment:
    def test_env_only(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOLLOWAY_API_KEY", "sk-env")
        monkeypatch.setenv("HOLLOWAY_MODEL", "gpt-4o")
        config = load_config(tmp_path / "missing.yaml")
        assert config.ai.api_key == "sk-env"
        assert config.ai.model == "gpt-4o"
        assert config.ai.base_url == DEFAULT_BASE_URL
        assert config.ai.max_tokens == 4096
        assert config.cli.max_tool_turns == 10
        assert config.cli.history_limit == 50
        assert config.cli.tool_timeout == 30.0
        assert config.cli.result_preview_chars == 100
        assert config.cli.timezone == "Europe/London"
        assert config.app.data_dir == tmp_path / ".holloway"
        assert config.app.data_dir.is_dir()

    def test_base_url_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOLLOWAY_API_KEY", "k")
        monkeypatch.setenv("HOLLOWAY_MODEL", "m")
        monkeypatch.setenv("HOLLOWAY_BASE_URL", "http://localhost:11434/v1")
        assert load_config(tmp_path / "missing.yaml").ai.base_url == "http://localhost:11434/v1"

    def test_missing_api_key(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOLLOWAY_MODEL", "m")
        with pytest.raises(ValueError, match="HOLLOWAY_API_KEY"):
            load_config(tmp_path / "missing.yaml")

    def test_missing_model(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOLLOWAY_API_KEY", "k")
        with pytest.raises(ValueError, match="HOLLOWAY_MODEL"):
            load_config(tmp_path / "missing.yaml")

    def test_log_level_env_wins(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOLLOWAY_API_KEY", "k")
        monkeypatch.setenv("HOLLOWAY_MODEL", "m")
        monkeypatch.setenv("HOLLOWAY_LOG_LEVEL", "debug")
        path = _write(tmp_path, "app:\n  log_level: info\n")
        assert load_config(path).app.log_level == "DEBUG"


class TestYamlFile:
    def test_file_values(self, tmp_path):
        path = _write(
            tmp_path,
            "ai:\n"
            "  api_key: sk-file\n"
            "  model: gpt-4o-mini\n"
            "  max_tokens: 2048\n"
            "  verify_ssl: false\n"
            "cli:\n"
            "  max_tool_turns: 5\n"
            "  history_limit: 20\n"
            "  tool_timeout: 12.5\n"
            "  timezone: UTC\n"
            f"app:\n  data_dir: {tmp_path / 'data'}\n",
        )
        config = load_config(path)
        assert config.ai.api_key == "sk-file"
        assert config.ai.model == "gpt-4o-mini"
        assert config.ai.max_tokens == 2048
        assert config.ai.verify_ssl is False
        assert config.cli.max_tool_turns == 5
        assert config.cli.history_limit == 20
        assert config.cli.tool_timeout == 12.5
        assert config.cli.timezone == "UTC"
        assert config.app.data_dir == tmp_path / "data"

    def test_file_overrides_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOLLOWAY_API_KEY", "sk-env")
        monkeypatch.setenv("HOLLOWAY_MODEL", "env-model")
        path = _write(tmp_path, "ai:\n  model: file-model\n")
        config = load_config(path)
        assert config.ai.model == "file-model"
        assert config.ai.api_key == "sk-env"

    def test_user_system_prompt_appended(self, tmp_path):
        path = _write(tmp_path, "ai:\n  api_key: k\n  model: m\n  system_prompt: Always answer in French.\n")
        config = load_config(path)
        assert config.ai.system_prompt.endswith(
            "<user_instructions>\nAlways answer in French.\n</user_instructions>"
        )
        assert "get_current_datetime" in config.ai.system_prompt

    def test_invalid_turn_limit(self, tmp_path):
        path = _write(tmp_path, "ai:\n  api_key: k\n  model: m\ncli:\n  max_tool_turns: 0\n")
        with pytest.raises(ValueError, match="cli.max_tool_turns"):
            load_config(path)

    def test_empty_file(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOLLOWAY_API_KEY", "k")
        monkeypatch.setenv("HOLLOWAY_MODEL", "m")
        assert load_config(_write(tmp_path, "")).ai.model == "m"


class TestFatalConfigError:
    def test_exits_with_setup_guide(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc:
            _load_config_or_exit(tmp_path / "missing.yaml")
        assert exc.value.code == 1
        err = capsys.readouterr().err
        assert "Configuration error" in err
        assert "HOLLOWAY_API_KEY=" in err
