"""Shell command execution tool."""

from __future__ import annotations

import asyncio
import contextlib
import json
import os
import signal
from typing import Any

from . import ToolDefinition, ToolExecutionError
from .security import check_blocked_command, expand_path

MAX_OUTPUT_BYTES = 100_000
DEFAULT_TIMEOUT_MS = 30_000
_SHELL = "/bin/bash"

DEFINITION: dict[str, Any] = {
    "name": "use_bash",
    "description": (
        "Executes a bash command and returns its output (stdout and stderr).\n\n"
        "Use it for anything easier via the command line: file searches (find, fd), content search "
        "(grep, rg), file info (stat, wc), system info (uname, df), text processing (sort, jq), "
        "git operations and pipelines.\n\n"
        "The command runs from the current working directory with a 30-second timeout by default. "
        "Destructive commands (rm -rf, mkfs, dd to devices, shutdown, ...) are blocked."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": "The bash command to execute. Can include pipes, redirects, subshells, etc.",
            },
            "working_directory": {
                "type": "string",
                "description": "Working directory for the command. Defaults to the project root. Supports ~.",
            },
            "timeout_ms": {
                "type": "number",
                "description": "Timeout in milliseconds. Defaults to 30000 (30 seconds).",
            },
        },
        "required": ["command"],
    },
}


def _kill_group(proc: asyncio.subprocess.Process) -> None:
    # The shell runs in its own session; kill its children along with it.
    with contextlib.suppress(ProcessLookupError):
        os.killpg(proc.pid, signal.SIGKILL)


def _cap(text: str) -> str:
    if len(text) > MAX_OUTPUT_BYTES:
        return text[:MAX_OUTPUT_BYTES] + "\n... [output truncated]"
    return text


async def run_command(command: str, cwd: str, timeout_ms: int) -> dict[str, Any]:
    try:
        proc = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            executable=_SHELL,
            env={**os.environ, "LANG": "en_US.UTF-8"},
            start_new_session=True,
        )
    except OSError as e:
        raise ToolExecutionError(f"Failed to execute command: {e}") from e

    result: dict[str, Any] = {"working_directory": cwd}
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_ms / 1000)
    except asyncio.TimeoutError:
        _kill_group(proc)
        await proc.wait()
        stdout, stderr = b"", b""
        result["error"] = f"Command timed out after {timeout_ms}ms and was killed."
    except asyncio.CancelledError:
        _kill_group(proc)
        raise

    result["exit_code"] = proc.returncode if proc.returncode is not None else -1
    stdout_str = stdout.decode("utf-8", errors="replace")
    stderr_str = stderr.decode("utf-8", errors="replace")
    if stdout_str:
        result["stdout"] = _cap(stdout_str)
    if stderr_str:
        result["stderr"] = _cap(stderr_str)
    return result


def build(working_dir: str) -> ToolDefinition:
    async def execute(tool_input: dict[str, Any]) -> str:
        command = tool_input["command"]
        if not isinstance(command, str) or not command.strip():
            raise ToolExecutionError("'command' must be a non-empty string")

        timeout_ms = tool_input.get("timeout_ms") or DEFAULT_TIMEOUT_MS
        if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, (int, float)) or timeout_ms <= 0:
            raise ToolExecutionError(f"'timeout_ms' must be a positive number, got {timeout_ms!r}")

        blocked = check_blocked_command(command)
        if blocked:
            raise ToolExecutionError(f"Command blocked for safety: {blocked}")

        cwd = working_dir
        cwd_input = tool_input.get("working_directory")
        if cwd_input:
            if not isinstance(cwd_input, str):
                raise ToolExecutionError("'working_directory' must be a string")
            cwd = expand_path(cwd_input, working_dir)
        if not os.path.isdir(cwd):
            raise ToolExecutionError(f"Working directory '{cwd}' does not exist")

        return json.dumps(await run_command(command, cwd, int(timeout_ms)), indent=2)

    return ToolDefinition(
        name=DEFINITION["name"],
        description=DEFINITION["description"],
        input_schema=DEFINITION["parameters"],
        execute=execute,
    )
