"""Edit file tool: preview a diff first, write only on an explicit confirm."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from ..services.diff_engine import compute_changes, locate_change, render_changes
from . import DiffObserver, ToolDefinition, ToolExecutionError
from .security import validate_path

logger = logging.getLogger(__name__)

_CREATE_PREVIEW_CHARS = 500
_VALID_MODES = ("replace", "insert_before", "insert_after", "append")

DEFINITION: dict[str, Any] = {
    "name": "edit_file",
    "description": (
        "Make edits to a text file.\n\n"
        "IMPORTANT: This tool ALWAYS shows a preview first and requires confirmation before writing.\n"
        "- First call: omit 'confirm' (or set it to false) to see a preview diff.\n"
        "- Second call: include 'confirm: true' to actually write the changes. The user is asked to approve.\n\n"
        "Modes:\n"
        "- replace (default): replace old_str, which must match exactly once, with new_str.\n"
        "- insert_before / insert_after: insert new_str before or after the old_str anchor.\n"
        "- append: add new_str to the end of the file (no old_str).\n"
        "- create: give only 'path' and 'new_str' for a file that does not exist yet; parent "
        "directories are created.\n\n"
        "Use read_file (with show_line_numbers) first and copy the exact text into old_str."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Path to the file (absolute, ~, or relative)."},
            "old_str": {
                "type": "string",
                "description": "Exact text to replace, or the anchor for insert modes. Omit for create/append.",
            },
            "new_str": {
                "type": "string",
                "description": "Replacement or inserted text. For new files, the entire file content.",
            },
            "mode": {
                "type": "string",
                "enum": list(_VALID_MODES),
                "description": "The edit operation. Defaults to 'replace'.",
            },
            "confirm": {
                "type": "boolean",
                "description": "Set to true to write the changes. ALWAYS preview first before confirming.",
            },
        },
        "required": ["path", "new_str"],
    },
}


def _str_field(tool_input: dict[str, Any], name: str, required: bool = False) -> str | None:
    value = tool_input.get(name)
    if value is None and not required:
        return None
    if not isinstance(value, str):
        raise ToolExecutionError(f"'{name}' must be a string, got {type(value).__name__}")
    return value


def _read_text(path: str) -> str:
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


def _write_text(path: str, content: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)


def plan_edit(content: str, old_str: str, new_str: str, mode: str) -> tuple[str, str, str]:
    """Apply one anchored edit in memory.

    Returns (new_content, action_label, changed_text) where changed_text is the
    region of the new content used to locate the change afterwards.
    """
    occurrences = content.count(old_str)
    if occurrences == 0:
        raise ToolExecutionError(
            "String not found in file. Use read_file (with show_line_numbers and/or search) "
            "to check the current contents and copy the exact text."
        )
    if occurrences > 1:
        raise ToolExecutionError(
            f"Found {occurrences} occurrences of old_str. Include more surrounding context "
            "in old_str to match exactly one location."
        )

    if mode == "insert_before":
        changed = new_str + "\n" + old_str
        return content.replace(old_str, changed, 1), "inserted_before", changed
    if mode == "insert_after":
        changed = old_str + "\n" + new_str
        return content.replace(old_str, changed, 1), "inserted_after", changed
    return content.replace(old_str, new_str, 1), "replaced", new_str


class EditFileTool:
    def __init__(self, working_dir: str, on_diff: DiffObserver | None = None) -> None:
        self.working_dir = working_dir
        self.on_diff = on_diff

    def _preview_diff(self, old: str, new: str, label: str) -> str:
        diff = render_changes(compute_changes(old, new), label, old, new)
        if self.on_diff:
            self.on_diff(diff)
        return diff

    async def __call__(self, tool_input: dict[str, Any]) -> str:
        path = _str_field(tool_input, "path", required=True)
        new_str = _str_field(tool_input, "new_str", required=True)
        old_str = _str_field(tool_input, "old_str")
        mode = _str_field(tool_input, "mode") or "replace"
        confirm = tool_input.get("confirm", False)
        if not isinstance(confirm, bool):
            raise ToolExecutionError(f"'confirm' must be a boolean, got {type(confirm).__name__}")

        if mode not in _VALID_MODES:
            raise ToolExecutionError(f"Invalid mode '{mode}'. Must be one of: {', '.join(_VALID_MODES)}")
        if mode == "replace" and old_str is not None and old_str == new_str:
            raise ToolExecutionError("'old_str' and 'new_str' must be different in replace mode.")

        resolved, error = validate_path(path, self.working_dir)
        if error:
            raise ToolExecutionError(error)

        try:
            if not os.path.exists(resolved):
                return self._create(path, resolved, new_str, old_str, mode, confirm)
            content = _read_text(resolved)

            if mode == "append":
                separator = "" if content.endswith("\n") else "\n"
                new_content = content + separator + new_str
                if not confirm:
                    diff = self._preview_diff(content, new_content, path)
                    return json.dumps(
                        {
                            "preview": True,
                            "action": "append",
                            "path": resolved,
                            "diff": diff,
                            "message": "Set 'confirm: true' to write these changes.",
                        }
                    )
                _write_text(resolved, new_content)
                logger.info("Appended %d line(s) to %s", len(new_str.split("\n")), resolved)
                return json.dumps(
                    {
                        "success": True,
                        "action": "appended",
                        "path": resolved,
                        "lines_added": len(new_str.split("\n")),
                        "new_total_lines": len(new_content.split("\n")),
                    }
                )

            if not old_str:
                raise ToolExecutionError(
                    "'old_str' is required for replace, insert_before, and insert_after modes. "
                    "To see the current contents, use read_file first."
                )

            new_content, action, changed = plan_edit(content, old_str, new_str, mode)
            location = locate_change(new_content, changed)

            if not confirm:
                diff = self._preview_diff(content, new_content, path)
                return json.dumps(
                    {
                        "preview": True,
                        "action": action,
                        "path": resolved,
                        "diff": diff,
                        "change_location": {"start_line": location.start_line, "end_line": location.end_line},
                        "message": "Set 'confirm: true' to write these changes.",
                    }
                )

            _write_text(resolved, new_content)
            logger.info("Edited %s (%s, lines %d-%d)", resolved, action, location.start_line, location.end_line)
            return json.dumps(
                {
                    "success": True,
                    "action": action,
                    "path": resolved,
                    "change_location": {"start_line": location.start_line, "end_line": location.end_line},
                    "snippet": location.snippet,
                },
                indent=2,
            )
        except PermissionError as e:
            raise ToolExecutionError(f"Permission denied writing to '{path}'.") from e
        except (OSError, UnicodeDecodeError) as e:
            raise ToolExecutionError(f"Could not edit file '{path}'. {e}") from e

    def _create(
        self, path: str, resolved: str, new_str: str, old_str: str | None, mode: str, confirm: bool
    ) -> str:
        if old_str or mode == "append":
            raise ToolExecutionError(
                f"File '{path}' not found. Cannot edit a file that doesn't exist. "
                "Use use_bash (e.g. find or ls) to check available files."
            )
        lines = len(new_str.split("\n"))
        if not confirm:
            preview = new_str
            if len(preview) > _CREATE_PREVIEW_CHARS:
                preview = preview[:_CREATE_PREVIEW_CHARS] + "\n... [truncated]"
            return json.dumps(
                {
                    "preview": True,
                    "action": "create",
                    "path": resolved,
                    "lines": lines,
                    "content_preview": preview,
                    "message": "Set 'confirm: true' to create this file.",
                }
            )
        parent = os.path.dirname(resolved)
        if parent:
            os.makedirs(parent, exist_ok=True)
        _write_text(resolved, new_str)
        logger.info("Created %s (%d lines)", resolved, lines)
        return json.dumps({"success": True, "action": "created", "path": resolved, "lines": lines})


def build(working_dir: str, on_diff: DiffObserver | None = None) -> ToolDefinition:
    return ToolDefinition(
        name=DEFINITION["name"],
        description=DEFINITION["description"],
        input_schema=DEFINITION["parameters"],
        execute=EditFileTool(working_dir, on_diff=on_diff),
    )
