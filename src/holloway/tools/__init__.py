"""Built-in tool catalog for the agentic CLI."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Union

logger = logging.getLogger(__name__)

ToolExecute = Callable[[dict[str, Any]], Union[str, Awaitable[str]]]
DiffObserver = Callable[[str], None]


class ToolInputError(ValueError):
    """Tool input does not match the declared schema shape."""


class ToolExecutionError(RuntimeError):
    """A tool body rejected its input or could not complete."""


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: Mapping[str, Any]
    execute: ToolExecute

    def openai_format(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": dict(self.input_schema),
            },
        }


def validate_input(tool_input: Any, schema: Mapping[str, Any]) -> None:
    """Check the input is a mapping carrying every required key.

    Field value types are not checked here; each tool validates its own fields.
    """
    if not isinstance(tool_input, Mapping):
        raise ToolInputError("Input must be a valid object")
    required = schema.get("required") or []
    missing = [name for name in required if name not in tool_input]
    if missing:
        raise ToolInputError(f"Missing required fields: {', '.join(missing)}")


class ToolRegistry:
    """Name-keyed catalog of tool definitions, fixed once the CLI starts."""

    def __init__(self, tools: list[ToolDefinition] | None = None) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    @property
    def tools(self) -> Mapping[str, ToolDefinition]:
        return MappingProxyType(self._tools)

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def list_tools(self) -> list[str]:
        return list(self._tools.keys())

    def get_openai_tools(self) -> list[dict[str, Any]]:
        return [tool.openai_format() for tool in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)


def build_default_registry(
    working_dir: str,
    timezone: str = "Europe/London",
    on_diff: DiffObserver | None = None,
) -> ToolRegistry:
    """Build the built-in catalog: clock, read, edit, LTFT calculator, bash."""
    from . import bash, clock, edit, ltft, read

    registry = ToolRegistry(
        [
            clock.build(default_timezone=timezone),
            read.build(working_dir),
            edit.build(working_dir, on_diff=on_diff),
            ltft.build(),
            bash.build(working_dir),
        ]
    )
    logger.debug("Registered tools: %s", ", ".join(registry.list_tools()))
    return registry
