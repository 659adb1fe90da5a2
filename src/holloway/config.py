"""Configuration loader: YAML file with environment variable fallbacks."""

from __future__ import annotations

import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_BASE_URL = "https://api.openai.com/v1"

_DEFAULT_SYSTEM_PROMPT = """\
You are Holloway, a helpful assistant with access to tools on the user's machine. Follow these principles:

<tool_use>
- Always use tools rather than guessing. In particular, never assume the current date or time; use the \
get_current_datetime tool.
- When a tool returns an error, read the error message carefully. It often suggests the correct recovery action.
- For file discovery, searching, and any filesystem exploration, use use_bash (e.g. find, ls, tree, grep, fd). \
It supports glob patterns, piped output, and regex natively.
- For reading file contents, use read_file. For editing files, use edit_file: call it once to preview the change, \
then again with confirm set to true to apply it. The user approves every confirmed edit.
- For anything else on the command line (git, system info, text processing), use use_bash.
</tool_use>

<communication>
- The user is based in the UK. When interpreting dates, assume DD/MM/YYYY unless the user says otherwise. \
If a date is ambiguous, ask for clarification.
- Present tool results in a clear, conversational way. Do not dump raw JSON to the user.
</communication>"""


@dataclass
class AIConfig:
    api_key: str
    model: str
    base_url: str = DEFAULT_BASE_URL
    max_tokens: int = 4096
    system_prompt: str = _DEFAULT_SYSTEM_PROMPT
    user_system_prompt: str = ""
    verify_ssl: bool = True
    request_timeout: int = 120  # seconds


@dataclass
class AppSettings:
    data_dir: Path = field(default_factory=lambda: Path.home() / ".holloway")
    log_level: str = "WARNING"


@dataclass
class CliConfig:
    max_tool_turns: int = 10
    history_limit: int = 50
    tool_timeout: float = 30.0  # seconds per tool call
    result_preview_chars: int = 100
    timezone: str = "Europe/London"


@dataclass
class AppConfig:
    ai: AIConfig
    app: AppSettings = field(default_factory=AppSettings)
    cli: CliConfig = field(default_factory=CliConfig)


def _get_config_path(data_dir: Path | None = None) -> Path:
    if data_dir:
        return data_dir / "config.yaml"
    return Path.home() / ".holloway" / "config.yaml"


def _positive_int(raw: Any, name: str, default: int) -> int:
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"'{name}' must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"'{name}' must be positive, got {value}")
    return value


def load_config(config_path: Path | None = None) -> AppConfig:
    raw: dict[str, Any] = {}
    path = config_path or _get_config_path()

    if path.exists():
        with open(path) as f:
            raw = yaml.safe_load(f) or {}

    ai_raw = raw.get("ai", {}) or {}
    base_url = ai_raw.get("base_url") or os.environ.get("HOLLOWAY_BASE_URL") or DEFAULT_BASE_URL
    api_key = ai_raw.get("api_key") or os.environ.get("HOLLOWAY_API_KEY", "")
    model = ai_raw.get("model") or os.environ.get("HOLLOWAY_MODEL", "")
    user_system_prompt = ai_raw.get("system_prompt") or os.environ.get("HOLLOWAY_SYSTEM_PROMPT", "")
    if user_system_prompt:
        system_prompt = (
            _DEFAULT_SYSTEM_PROMPT + "\n\n<user_instructions>\n" + user_system_prompt + "\n</user_instructions>"
        )
    else:
        system_prompt = _DEFAULT_SYSTEM_PROMPT

    if not api_key:
        raise ValueError(
            f"AI api_key is required. Set 'ai.api_key' in config.yaml ({path}) or HOLLOWAY_API_KEY environment variable."
        )
    if not model:
        raise ValueError(
            f"AI model is required. Set 'ai.model' in config.yaml ({path}) or HOLLOWAY_MODEL environment variable."
        )

    verify_ssl_raw = ai_raw.get("verify_ssl", os.environ.get("HOLLOWAY_VERIFY_SSL", "true"))
    verify_ssl = str(verify_ssl_raw).lower() not in ("false", "0", "no")

    ai = AIConfig(
        api_key=api_key,
        model=model,
        base_url=base_url,
        max_tokens=_positive_int(ai_raw.get("max_tokens"), "ai.max_tokens", 4096),
        system_prompt=system_prompt,
        user_system_prompt=user_system_prompt,
        verify_ssl=verify_ssl,
        request_timeout=_positive_int(ai_raw.get("request_timeout"), "ai.request_timeout", 120),
    )

    app_raw = raw.get("app", {}) or {}
    app_settings = AppSettings(
        data_dir=Path(os.path.expanduser(app_raw.get("data_dir", "~/.holloway"))),
        log_level=str(os.environ.get("HOLLOWAY_LOG_LEVEL") or app_raw.get("log_level", "WARNING")).upper(),
    )

    app_settings.data_dir.mkdir(parents=True, exist_ok=True)
    try:
        app_settings.data_dir.chmod(stat.S_IRWXU)  # 0700
        if path.exists():
            path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0600
    except OSError:
        pass  # May fail on Windows or non-owned files

    cli_raw = raw.get("cli", {}) or {}
    cli_config = CliConfig(
        max_tool_turns=_positive_int(cli_raw.get("max_tool_turns"), "cli.max_tool_turns", 10),
        history_limit=_positive_int(cli_raw.get("history_limit"), "cli.history_limit", 50),
        tool_timeout=float(cli_raw.get("tool_timeout", 30.0)),
        result_preview_chars=_positive_int(cli_raw.get("result_preview_chars"), "cli.result_preview_chars", 100),
        timezone=str(cli_raw.get("timezone", "Europe/London")),
    )

    return AppConfig(ai=ai, app=app_settings, cli=cli_config)
