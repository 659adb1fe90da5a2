"""Security utilities for built-in tools.

Path validation for the file tools and the blocked-pattern check the shell
tool runs before spawning anything.
"""

from __future__ import annotations

import logging
import os
import re
import sys

logger = logging.getLogger(__name__)

_IS_WINDOWS = sys.platform == "win32"

# Paths that should never be accessible via tools
_BLOCKED_PATHS = {
    "/etc/shadow",
    "/etc/passwd",
    "/etc/sudoers",
}

_BLOCKED_PREFIXES = (
    "/proc/",
    "/sys/",
    "/dev/",
)

# Catastrophic commands rejected before a shell is spawned.
_BLOCKED_COMMAND_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\brm\s+-[^\s]*r[^\s]*f"), "recursive forced deletion (rm -rf)"),
    (re.compile(r"\brm\s+-[^\s]*f[^\s]*r"), "recursive forced deletion (rm -fr)"),
    (re.compile(r"\bmkfs\b"), "disk formatting (mkfs)"),
    (re.compile(r"\bdd\s+.*of=/dev"), "device overwrite (dd)"),
    (re.compile(r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:"), "fork bomb"),
    (re.compile(r">\s*/dev/sd[a-z]"), "raw disk write"),
    (re.compile(r"\bshutdown\b"), "shutdown"),
    (re.compile(r"\breboot\b"), "reboot"),
]


def safe_resolve(path: str) -> str:
    """Resolve to an absolute path; symlinks are followed on POSIX only."""
    if _IS_WINDOWS:
        return os.path.normpath(os.path.abspath(path))
    return os.path.realpath(path)


def expand_path(path: str, working_dir: str) -> str:
    """Expand ``~`` and anchor relative paths at the working directory."""
    expanded = os.path.expanduser(path)
    if os.path.isabs(expanded):
        return expanded
    return os.path.join(working_dir, expanded)


def validate_path(path: str, working_dir: str) -> tuple[str, str | None]:
    """Validate and resolve a file path.

    Returns (resolved_path, error_message).
    If error_message is not None, the path is invalid.
    """
    if "\x00" in path:
        return "", "Path contains null bytes"

    resolved = safe_resolve(expand_path(path, working_dir))

    for blocked in _BLOCKED_PATHS:
        if resolved == blocked or resolved == safe_resolve(blocked):
            logger.warning("Blocked access to sensitive path: %s", resolved)
            return "", f"Access denied: {path}"

    for prefix in _BLOCKED_PREFIXES:
        prefix_real = safe_resolve(prefix.rstrip("/")) + "/"
        if resolved.startswith(prefix) or resolved.startswith(prefix_real):
            logger.warning("Blocked access to system path: %s", resolved)
            return "", f"Access denied: {path}"

    return resolved, None


def check_blocked_command(command: str) -> str | None:
    """Return a description of the blocked pattern the command matches, or None."""
    if "\x00" in command:
        return "null bytes in command"
    for pattern, description in _BLOCKED_COMMAND_PATTERNS:
        if pattern.search(command):
            logger.warning("Blocked dangerous command (%s): %s", description, command[:100])
            return description
    return None
