"""Rich-based terminal output for the CLI chat."""

from __future__ import annotations

import json
import time
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.padding import Padding
from rich.status import Status
from rich.text import Text

console = Console(stderr=True)
# Separate console for stdout markdown rendering (not stderr)
_stdout_console = Console()

# Spinner state
_thinking_start: float = 0
_spinner: Status | None = None


def start_thinking() -> None:
    """Show a spinner while the model is working."""
    global _thinking_start, _spinner
    if _spinner:
        return
    _thinking_start = time.monotonic()
    _spinner = Status("Thinking...", console=console, spinner="dots")
    _spinner.start()


def stop_thinking() -> float:
    """Stop the spinner, return elapsed seconds."""
    global _spinner
    elapsed = 0.0
    if _spinner:
        elapsed = time.monotonic() - _thinking_start
        _spinner.stop()
        _spinner = None
    return elapsed


def render_welcome(model: str, tool_count: int, working_dir: str) -> None:
    console.print(f"\n[bold]Holloway[/bold] - {escape(working_dir)}")
    console.print(f"  Model: {escape(model)} | Tools: {tool_count}")
    console.print("  Type [bold]exit[/bold] or [bold]quit[/bold] to stop, [bold]Ctrl+D[/bold] to exit\n")


def render_response(text: str) -> None:
    """Render the assistant's reply with Rich Markdown."""
    if not text.strip():
        return
    console.print("[yellow bold]Assistant:[/yellow bold]")
    _stdout_console.print(Padding(Markdown(text), (0, 2, 0, 2)))


def render_tool_call_start(tool_name: str, arguments: Any) -> None:
    console.print(f"\n  [cyan]\\[Tool Use: {escape(tool_name)}][/cyan]")
    if isinstance(arguments, dict) and arguments:
        console.print(Text(f"  Input: {json.dumps(arguments, indent=2, default=str)}", style="grey62"))
    elif not isinstance(arguments, dict):
        console.print(Text(f"  Input: {arguments!r}", style="grey62"))


def render_tool_call_end(tool_name: str, is_error: bool, preview: str) -> None:
    if is_error:
        text = Text(f"  [Error: {tool_name}: {preview}]", style="red")
    else:
        text = Text(f"  [Tool use result: {preview}]", style="green")
    console.print(text)


def _diff_line_style(line: str) -> str:
    # Numbered lines look like "  12 │ - text"; the marker follows the gutter.
    if line[4:6] == " │":
        marker = line[6:9]
        if marker == " - ":
            return "red"
        if marker == " + ":
            return "green"
        return "grey62"
    if line.startswith("@@"):
        return "bold cyan"
    return "cyan"


def render_diff(diff: str) -> None:
    """Print a rendered edit preview, colouring removed and added lines."""
    stop_thinking()
    console.print()
    for line in diff.splitlines():
        console.print(Text(line, style=_diff_line_style(line)))


def render_approval_prompt() -> str:
    return "\n  Do you approve these changes? (yes/no): "


def render_approval(approved: bool) -> None:
    if approved:
        console.print("  [green]\\[User approved - proceeding with edit][/green]")
    else:
        console.print("  [red]\\[Edit cancelled by user][/red]")


def render_turn_limit(max_tool_turns: int) -> None:
    console.print(f"\n[red]\\[Stopping: exceeded {max_tool_turns} tool turns][/red]")


def render_saving() -> None:
    console.print("\n[yellow]Saving conversation...[/yellow]")


def render_saved(path: str) -> None:
    console.print(f"[green]Conversation saved to {escape(path)}[/green]")


def render_save_failed(error: str) -> None:
    console.print(f"[red]Failed to save conversation: {escape(error)}[/red]")


def render_goodbye() -> None:
    console.print("Goodbye!")


def render_error(message: str) -> None:
    console.print(f"\n[red bold]Error:[/red bold] {escape(message)}")
