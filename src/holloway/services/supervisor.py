"""Tool execution supervisor: runs one model turn's tool calls.

Every request in a batch runs concurrently. Each one is resolved against the
registry, validated, passed through the approval gate when it is a confirmed
file edit, and raced against a timeout. Whatever happens, the request ends as
a ``ToolResultBlock``; nothing a tool does can break out of ``execute_all``.

A timed-out call is cancelled. Synchronous tool bodies are run in a worker
thread; those cannot be interrupted and may keep running after their result
is dropped. The built-in file tools are coroutines doing blocking file I/O
inline, so a timeout only lands once that I/O returns.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Sequence

from ..models import ToolResultBlock, ToolUseBlock
from ..tools import ToolDefinition, ToolInputError, ToolRegistry, validate_input

logger = logging.getLogger(__name__)

EDIT_TOOL_NAME = "edit_file"
DEFAULT_TOOL_TIMEOUT = 30.0
RESULT_PREVIEW_CHARS = 100
CANCELLED_EDIT_MESSAGE = "Edit cancelled by user. The changes were not made."

ApprovalCallback = Callable[[ToolUseBlock], Awaitable[bool]]
StartObserver = Callable[[ToolUseBlock], None]
ResultObserver = Callable[[ToolUseBlock, ToolResultBlock, str], None]


def preview_text(content: str, limit: int = RESULT_PREVIEW_CHARS) -> str:
    if len(content) > limit:
        return content[:limit] + "... (truncated)"
    return content


def needs_approval(request: ToolUseBlock) -> bool:
    """Only an edit that explicitly asks to write (``confirm: true``) goes to the operator."""
    return (
        request.name == EDIT_TOOL_NAME
        and isinstance(request.input, Mapping)
        and request.input.get("confirm") is True
    )


def _is_async_callable(fn: Any) -> bool:
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(getattr(fn, "__call__", None))


class ToolSupervisor:
    def __init__(
        self,
        registry: ToolRegistry,
        approve: ApprovalCallback | None = None,
        timeout: float = DEFAULT_TOOL_TIMEOUT,
        preview_chars: int = RESULT_PREVIEW_CHARS,
        on_start: StartObserver | None = None,
        on_result: ResultObserver | None = None,
    ) -> None:
        self.registry = registry
        self._approve = approve
        self.timeout = timeout
        self.preview_chars = preview_chars
        self._on_start = on_start
        self._on_result = on_result
        # Approval prompts share one input stream; ask one question at a time.
        self._approval_lock = asyncio.Lock()

    async def execute_all(self, requests: Sequence[ToolUseBlock]) -> list[ToolResultBlock]:
        return list(await asyncio.gather(*(self.execute_one(request) for request in requests)))

    async def execute_one(self, request: ToolUseBlock) -> ToolResultBlock:
        if self._on_start:
            self._on_start(request)
        result = await self._run(request)
        if result.is_error:
            logger.info("Tool %s (%s) failed: %s", request.name, request.id, preview_text(result.content, 200))
        else:
            logger.debug("Tool %s (%s) succeeded", request.name, request.id)
        if self._on_result:
            self._on_result(request, result, preview_text(result.content, self.preview_chars))
        return result

    async def _run(self, request: ToolUseBlock) -> ToolResultBlock:
        tool = self.registry.get(request.name)
        if tool is None:
            logger.warning("Model requested unknown tool: %s", request.name)
            return _error(request, f"Error: Tool {request.name} not found")

        try:
            validate_input(request.input, tool.input_schema)
        except ToolInputError as e:
            return _error(request, str(e))

        if needs_approval(request) and not await self._ask_approval(request):
            logger.info("Operator declined %s (%s)", request.name, request.id)
            return _error(request, json.dumps({"error": CANCELLED_EDIT_MESSAGE}))

        try:
            content = await asyncio.wait_for(self._invoke(tool, dict(request.input)), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Tool %s (%s) timed out after %gs", request.name, request.id, self.timeout)
            return _error(request, f"Tool execution timed out after {self.timeout:g}s")
        except Exception as e:
            logger.debug("Tool %s raised", request.name, exc_info=True)
            return _error(request, str(e) or type(e).__name__)

        if not isinstance(content, str):
            content = json.dumps(content, default=str)
        return ToolResultBlock(tool_use_id=request.id, content=content)

    async def _ask_approval(self, request: ToolUseBlock) -> bool:
        if self._approve is None:
            logger.warning("No approval channel; declining %s", request.name)
            return False
        async with self._approval_lock:
            try:
                return await self._approve(request)
            except (EOFError, KeyboardInterrupt):
                return False

    @staticmethod
    async def _invoke(tool: ToolDefinition, tool_input: dict[str, Any]) -> Any:
        if _is_async_callable(tool.execute):
            return await tool.execute(tool_input)
        result = await asyncio.to_thread(tool.execute, tool_input)
        if inspect.isawaitable(result):
            result = await result
        return result


def _error(request: ToolUseBlock, message: str) -> ToolResultBlock:
    return ToolResultBlock(tool_use_id=request.id, content=message, is_error=True)
