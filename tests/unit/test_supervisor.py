"""Tests for ToolSupervisor: dispatch, validation, approval gate, timeouts."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from holloway.models import ToolUseBlock
from holloway.services.supervisor import CANCELLED_EDIT_MESSAGE, ToolSupervisor, needs_approval, preview_text
from holloway.tools import ToolDefinition, ToolExecutionError, ToolRegistry
from holloway.tools.edit import build as build_edit


def _tool(name, execute, required=None) -> ToolDefinition:
    return ToolDefinition(
        name=name,
        description=name,
        input_schema={"type": "object", "properties": {}, "required": required or []},
        execute=execute,
    )


def _call(name, tool_input=None, call_id=None) -> ToolUseBlock:
    return ToolUseBlock(id=call_id or f"call_{name}", name=name, input={} if tool_input is None else tool_input)


async def _echo(tool_input):
    return json.dumps(tool_input)


class TestPreview:
    def test_short_content_unchanged(self):
        assert preview_text("abc") == "abc"

    def test_long_content_truncated(self):
        assert preview_text("x" * 101) == "x" * 100 + "... (truncated)"

    def test_needs_approval_only_for_confirmed_edit(self):
        assert needs_approval(_call("edit_file", {"confirm": True}))
        assert not needs_approval(_call("edit_file", {"confirm": "true"}))
        assert not needs_approval(_call("edit_file", {}))
        assert not needs_approval(_call("use_bash", {"confirm": True}))


class TestDispatch:
    @pytest.mark.asyncio
    async def test_success(self):
        supervisor = ToolSupervisor(ToolRegistry([_tool("echo", _echo)]))
        [result] = await supervisor.execute_all([_call("echo", {"a": 1}, "id1")])
        assert result.tool_use_id == "id1"
        assert result.is_error is False
        assert json.loads(result.content) == {"a": 1}

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        supervisor = ToolSupervisor(ToolRegistry())
        [result] = await supervisor.execute_all([_call("nope")])
        assert result.is_error is True
        assert result.content == "Error: Tool nope not found"

    @pytest.mark.asyncio
    async def test_validation_failure_skips_execute(self):
        execute = AsyncMock(return_value="never")
        supervisor = ToolSupervisor(ToolRegistry([_tool("t", execute, required=["path"])]))
        [missing] = await supervisor.execute_all([_call("t", {})])
        [wrong_shape] = await supervisor.execute_all([_call("t", "not an object")])
        assert missing.is_error and missing.content == "Missing required fields: path"
        assert wrong_shape.is_error and wrong_shape.content == "Input must be a valid object"
        execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_exception_becomes_error_result(self):
        async def boom(tool_input):
            raise ToolExecutionError("File 'x' not found.")

        supervisor = ToolSupervisor(ToolRegistry([_tool("boom", boom)]))
        [result] = await supervisor.execute_all([_call("boom")])
        assert result.is_error
        assert result.content == "File 'x' not found."

    @pytest.mark.asyncio
    async def test_sync_tool_runs_in_thread(self):
        def blocking(tool_input):
            return "sync ok"

        supervisor = ToolSupervisor(ToolRegistry([_tool("sync", blocking)]))
        [result] = await supervisor.execute_all([_call("sync")])
        assert result.content == "sync ok"

    @pytest.mark.asyncio
    async def test_results_keep_request_order(self):
        async def slow(tool_input):
            await asyncio.sleep(0.05)
            return "slow"

        async def fast(tool_input):
            return "fast"

        supervisor = ToolSupervisor(ToolRegistry([_tool("slow", slow), _tool("fast", fast)]))
        results = await supervisor.execute_all([_call("slow"), _call("fast")])
        assert [r.content for r in results] == ["slow", "fast"]


class TestConcurrencyAndTimeout:
    @pytest.mark.asyncio
    async def test_batch_runs_concurrently(self):
        first, second = asyncio.Event(), asyncio.Event()

        async def a(tool_input):
            first.set()
            await second.wait()
            return "a"

        async def b(tool_input):
            second.set()
            await first.wait()
            return "b"

        supervisor = ToolSupervisor(ToolRegistry([_tool("a", a), _tool("b", b)]), timeout=2)
        results = await supervisor.execute_all([_call("a"), _call("b")])
        assert [r.is_error for r in results] == [False, False]

    @pytest.mark.asyncio
    async def test_one_timeout_in_batch_of_three(self):
        async def hang(tool_input):
            await asyncio.sleep(30)
            return "late"

        registry = ToolRegistry([_tool("echo", _echo), _tool("hang", hang)])
        supervisor = ToolSupervisor(registry, timeout=0.05)
        results = await supervisor.execute_all(
            [_call("echo", {}, "1"), _call("hang", {}, "2"), _call("echo", {}, "3")]
        )
        assert len(results) == 3
        assert [r.tool_use_id for r in results] == ["1", "2", "3"]
        assert [r.is_error for r in results] == [False, True, False]
        assert results[1].content == "Tool execution timed out after 0.05s"

    @pytest.mark.asyncio
    async def test_default_timeout(self):
        supervisor = ToolSupervisor(ToolRegistry())
        assert supervisor.timeout == 30.0


class TestObservers:
    @pytest.mark.asyncio
    async def test_observers_see_truncated_preview_history_gets_full(self):
        async def big(tool_input):
            return "x" * 250

        on_start = MagicMock()
        on_result = MagicMock()
        supervisor = ToolSupervisor(ToolRegistry([_tool("big", big)]), on_start=on_start, on_result=on_result)
        [result] = await supervisor.execute_all([_call("big")])

        on_start.assert_called_once()
        request, observed, preview = on_result.call_args[0]
        assert request.name == "big"
        assert observed is result
        assert preview == "x" * 100 + "... (truncated)"
        assert result.content == "x" * 250


class TestApprovalGate:
    @pytest.fixture()
    def target(self, tmp_path):
        path = tmp_path / "f.txt"
        path.write_text("a\nb\nc\n", encoding="utf-8")
        return path

    def _edit(self, **extra):
        return _call("edit_file", {"path": "f.txt", "old_str": "b", "new_str": "B", **extra}, "edit1")

    @pytest.mark.asyncio
    async def test_declined_leaves_file_unchanged(self, target, tmp_path):
        approve = AsyncMock(return_value=False)
        supervisor = ToolSupervisor(ToolRegistry([build_edit(str(tmp_path))]), approve=approve)
        [result] = await supervisor.execute_all([self._edit(confirm=True)])

        approve.assert_awaited_once()
        assert result.is_error
        assert json.loads(result.content) == {"error": CANCELLED_EDIT_MESSAGE}
        assert target.read_bytes() == b"a\nb\nc\n"

    @pytest.mark.asyncio
    async def test_approved_writes(self, target, tmp_path):
        approve = AsyncMock(return_value=True)
        supervisor = ToolSupervisor(ToolRegistry([build_edit(str(tmp_path))]), approve=approve)
        [result] = await supervisor.execute_all([self._edit(confirm=True)])

        assert not result.is_error
        assert json.loads(result.content)["change_location"]["start_line"] == 2
        assert target.read_text(encoding="utf-8") == "a\nB\nc\n"

    @pytest.mark.asyncio
    async def test_preview_does_not_ask(self, target, tmp_path):
        approve = AsyncMock(return_value=True)
        supervisor = ToolSupervisor(ToolRegistry([build_edit(str(tmp_path))]), approve=approve)
        [result] = await supervisor.execute_all([self._edit()])

        approve.assert_not_called()
        assert json.loads(result.content)["preview"] is True

    @pytest.mark.asyncio
    async def test_no_approval_channel_declines(self, target, tmp_path):
        supervisor = ToolSupervisor(ToolRegistry([build_edit(str(tmp_path))]))
        [result] = await supervisor.execute_all([self._edit(confirm=True)])
        assert result.is_error
        assert target.read_text(encoding="utf-8") == "a\nb\nc\n"

    @pytest.mark.asyncio
    async def test_approval_eof_declines(self, target, tmp_path):
        approve = AsyncMock(side_effect=EOFError)
        supervisor = ToolSupervisor(ToolRegistry([build_edit(str(tmp_path))]), approve=approve)
        [result] = await supervisor.execute_all([self._edit(confirm=True)])
        assert result.is_error
        assert target.read_text(encoding="utf-8") == "a\nb\nc\n"

    @pytest.mark.asyncio
    async def test_approvals_are_asked_one_at_a_time(self, tmp_path):
        for name in ("x.txt", "y.txt"):
            (tmp_path / name).write_text("old\n", encoding="utf-8")
        active = 0
        peak = 0

        async def approve(request):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return True

        supervisor = ToolSupervisor(ToolRegistry([build_edit(str(tmp_path))]), approve=approve)
        results = await supervisor.execute_all(
            [
                _call("edit_file", {"path": name, "old_str": "old", "new_str": "new", "confirm": True}, name)
                for name in ("x.txt", "y.txt")
            ]
        )
        assert peak == 1
        assert not any(r.is_error for r in results)
        assert (tmp_path / "y.txt").read_text(encoding="utf-8") == "new\n"
