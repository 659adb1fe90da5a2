"""Read file contents tool."""

from __future__ import annotations

import json
import os
from typing import Any

from ..services.diff_engine import format_line_numbers
from . import ToolDefinition, ToolExecutionError
from .security import validate_path

_BINARY_CHECK_BYTES = 8192
_DEFAULT_MAX_LINES = 1000
_DEFAULT_CONTEXT_LINES = 3

_EXTENSION_LANGUAGES = {
    ".ts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "jsx",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".py": "python",
    ".rb": "ruby",
    ".rs": "rust",
    ".go": "go",
    ".java": "java",
    ".kt": "kotlin",
    ".swift": "swift",
    ".cs": "csharp",
    ".cpp": "cpp",
    ".c": "c",
    ".h": "c",
    ".hpp": "cpp",
    ".css": "css",
    ".scss": "scss",
    ".html": "html",
    ".vue": "vue",
    ".svelte": "svelte",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".xml": "xml",
    ".md": "markdown",
    ".sql": "sql",
    ".sh": "bash",
    ".bash": "bash",
    ".zsh": "zsh",
    ".dockerfile": "dockerfile",
    ".tf": "terraform",
    ".lua": "lua",
    ".r": "r",
    ".php": "php",
    ".ex": "elixir",
    ".exs": "elixir",
}

_FILENAME_LANGUAGES = {
    "dockerfile": "dockerfile",
    "makefile": "makefile",
    "rakefile": "ruby",
    "gemfile": "ruby",
    ".gitignore": "gitignore",
    ".env": "dotenv",
}

DEFINITION: dict[str, Any] = {
    "name": "read_file",
    "description": (
        "Reads the contents of a file at the given path. Binary files are detected and rejected.\n\n"
        "The path can be absolute, home-relative (~/notes.txt) or relative to the current working directory. "
        "If you don't know the exact path, use use_bash (find, ls) first. For large files, use max_lines "
        "and offset to limit output.\n\n"
        "Set show_line_numbers to prefix every line with its number. Provide 'search' to return only "
        "matching lines (case-insensitive) with surrounding context. Returns structured JSON with file "
        "metadata and content."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Path to the file (absolute, ~, or relative)."},
            "max_lines": {"type": "number", "description": "Maximum number of lines to return. Defaults to 1000."},
            "offset": {"type": "number", "description": "Line number to start reading from (1-based). Defaults to 1."},
            "show_line_numbers": {
                "type": "boolean",
                "description": "Prefix each line with its line number. Defaults to false.",
            },
            "search": {
                "type": "string",
                "description": "Only return lines containing this text (case-insensitive), with context.",
            },
            "context_lines": {
                "type": "number",
                "description": "Context lines around each search match. Defaults to 3.",
            },
        },
        "required": ["path"],
    },
}


def detect_language(path: str) -> str | None:
    ext = os.path.splitext(path)[1].lower()
    if ext in _EXTENSION_LANGUAGES:
        return _EXTENSION_LANGUAGES[ext]
    return _FILENAME_LANGUAGES.get(os.path.basename(path).lower())


def _int_field(tool_input: dict[str, Any], name: str, default: int) -> int:
    value = tool_input.get(name)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ToolExecutionError(f"'{name}' must be a number, got {type(value).__name__}")
    return int(value)


def _search(lines: list[str], query: str, context: int, max_lines: int, numbered: bool) -> tuple[list[int], str]:
    needle = query.lower()
    matches = [i for i, line in enumerate(lines) if needle in line.lower()]

    ranges: list[list[int]] = []
    for idx in matches:
        start = max(0, idx - context)
        end = min(len(lines) - 1, idx + context)
        if ranges and start <= ranges[-1][1] + 1:
            ranges[-1][1] = end
        else:
            ranges.append([start, end])

    sections: list[str] = []
    emitted = 0
    for start, end in ranges:
        chunk = lines[start : end + 1]
        emitted += len(chunk)
        if emitted > max_lines:
            break
        sections.append(format_line_numbers(chunk, start + 1) if numbered else "\n".join(chunk))
    return matches, "\n---\n".join(sections)


def read_file(tool_input: dict[str, Any], working_dir: str) -> str:
    path = tool_input["path"]
    if not isinstance(path, str):
        raise ToolExecutionError("'path' must be a string")
    max_lines = _int_field(tool_input, "max_lines", _DEFAULT_MAX_LINES) or _DEFAULT_MAX_LINES
    offset = max(1, _int_field(tool_input, "offset", 1))
    context = _int_field(tool_input, "context_lines", _DEFAULT_CONTEXT_LINES)
    numbered = bool(tool_input.get("show_line_numbers", False))
    query = tool_input.get("search")

    resolved, error = validate_path(path, working_dir)
    if error:
        raise ToolExecutionError(error)

    try:
        if not os.path.isfile(resolved):
            if not os.path.exists(resolved):
                raise ToolExecutionError(
                    f"File '{path}' not found. Use use_bash (e.g. find or ls) to discover available files."
                )
            raise ToolExecutionError(f"'{path}' is not a file.")
        with open(resolved, "rb") as f:
            raw = f.read()
    except PermissionError as e:
        raise ToolExecutionError(f"Permission denied reading '{path}'.") from e
    except OSError as e:
        raise ToolExecutionError(f"Could not read file '{path}'. {e}") from e

    if b"\x00" in raw[:_BINARY_CHECK_BYTES]:
        raise ToolExecutionError(
            f"File '{path}' appears to be binary ({len(raw)} bytes). Use use_bash (e.g. file, xxd) to inspect it."
        )

    lines = raw.decode("utf-8", errors="replace").split("\n")
    result: dict[str, Any] = {"path": resolved, "total_lines": len(lines), "size_bytes": len(raw)}
    language = detect_language(resolved)
    if language:
        result["language"] = language

    if query:
        matches, content = _search(lines, str(query), context, max_lines, numbered)
        result.update(
            {
                "search": query,
                "matches": len(matches),
                "match_lines": [i + 1 for i in matches],
                "content": content if matches else "(no matches found)",
            }
        )
        return json.dumps(result, indent=2)

    selected = lines[offset - 1 : offset - 1 + max_lines]
    result.update(
        {
            "showing_lines": f"{offset}-{min(offset + len(selected) - 1, len(lines))}",
            "truncated": offset - 1 + max_lines < len(lines),
            "content": format_line_numbers(selected, offset) if numbered else "\n".join(selected),
        }
    )
    return json.dumps(result, indent=2)


def build(working_dir: str) -> ToolDefinition:
    async def execute(tool_input: dict[str, Any]) -> str:
        return read_file(tool_input, working_dir)

    return ToolDefinition(
        name=DEFINITION["name"],
        description=DEFINITION["description"],
        input_schema=DEFINITION["parameters"],
        execute=execute,
    )
