"""Pydantic models for conversation messages and content blocks."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """A tool invocation requested by the model. ``id`` correlates it with its result."""

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: Any = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = Annotated[Union[TextBlock, ToolUseBlock, ToolResultBlock], Field(discriminator="type")]


class Message(BaseModel):
    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]

    def is_plain_user(self) -> bool:
        """True for a user message typed by the operator (not a tool-result carrier)."""
        return self.role == "user" and isinstance(self.content, str)

    def tool_uses(self) -> list[ToolUseBlock]:
        if isinstance(self.content, str):
            return []
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))


class BackendResponse(BaseModel):
    content: list[ContentBlock] = Field(default_factory=list)
    stop_reason: str = "end_turn"

    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    def wants_tools(self) -> bool:
        return bool(self.tool_uses()) and self.stop_reason == "tool_use"

    def text(self) -> str:
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))


class ChangeLocation(BaseModel):
    start_line: int
    end_line: int
    snippet: str = ""
