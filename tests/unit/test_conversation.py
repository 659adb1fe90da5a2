"""Tests for Conversation history bounding and transcript saving."""

from __future__ import annotations

import json
from datetime import datetime, timezone

from holloway.models import TextBlock, ToolResultBlock, ToolUseBlock
from holloway.services.conversation import Conversation


def _tool_exchange(conversation: Conversation, n: int) -> None:
    conversation.add_tool_exchange(
        [TextBlock(text="checking"), ToolUseBlock(id=f"t{n}", name="read_file", input={"path": "x"})],
        [ToolResultBlock(tool_use_id=f"t{n}", content="ok")],
    )


def _rounds(count: int, tools_per_round: int = 1) -> Conversation:
    conversation = Conversation()
    for r in range(count):
        conversation.add_user_text(f"question {r}")
        for t in range(tools_per_round):
            _tool_exchange(conversation, r * 100 + t)
        conversation.add_assistant([TextBlock(text=f"answer {r}")])
    return conversation


class TestBoundHistory:
    def test_under_limit_untouched(self):
        conversation = _rounds(3)
        assert conversation.bound_history(50) == 0
        assert len(conversation) == 12

    def test_cuts_at_first_plain_user_message(self):
        conversation = _rounds(20)  # 80 messages, a plain user message every 4
        dropped = conversation.bound_history(50)
        assert dropped == 32
        assert len(conversation) == 48
        assert conversation[0].is_plain_user()
        assert conversation[0].content == "question 8"

    def test_never_starts_with_tool_result_message(self):
        for tools_per_round in range(0, 6):
            for rounds in range(1, 40):
                conversation = _rounds(rounds, tools_per_round)
                conversation.bound_history(50)
                first = conversation[0]
                assert first.role == "user"
                assert first.is_plain_user()

    def test_every_tool_use_keeps_its_result(self):
        conversation = _rounds(30, tools_per_round=2)
        conversation.bound_history(50)
        messages = conversation.messages
        for i, message in enumerate(messages):
            for use in message.tool_uses():
                reply = messages[i + 1]
                assert any(
                    isinstance(b, ToolResultBlock) and b.tool_use_id == use.id for b in reply.content
                )

    def test_defers_when_no_safe_boundary(self):
        conversation = Conversation()
        conversation.add_user_text("start")
        for n in range(30):
            _tool_exchange(conversation, n)
        assert len(conversation) == 61

        assert conversation.bound_history(50) == 0
        assert len(conversation) == 61
        assert conversation[0].content == "start"

    def test_custom_limit(self):
        conversation = _rounds(5)  # 20 messages
        conversation.bound_history(10)
        assert len(conversation) == 8
        assert conversation[0].content == "question 3"


class TestSave:
    def test_filename_and_contents(self, tmp_path):
        conversation = Conversation()
        conversation.add_user_text("hi")
        _tool_exchange(conversation, 1)
        conversation.add_assistant([TextBlock(text="hello")])

        now = datetime(2026, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
        path = conversation.save(tmp_path, now=now)

        assert path.name == "conversation-2026-01-02T03-04-05-678Z.json"
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data[0] == {"role": "user", "content": "hi"}
        assert data[1]["content"][1] == {
            "type": "tool_use",
            "id": "t1",
            "name": "read_file",
            "input": {"path": "x"},
        }
        assert data[2]["content"][0] == {
            "type": "tool_result",
            "tool_use_id": "t1",
            "content": "ok",
            "is_error": False,
        }
        assert data[3] == {"role": "assistant", "content": [{"type": "text", "text": "hello"}]}

    def test_two_space_indent(self, tmp_path):
        conversation = Conversation()
        conversation.add_user_text("hi")
        path = conversation.save(tmp_path)
        assert path.read_text(encoding="utf-8").startswith('[\n  {\n    "role": "user"')
