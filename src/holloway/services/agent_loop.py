"""The inference loop for one user turn: ask the model, run its tools, repeat."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator

from ..models import BackendResponse, TextBlock
from .ai_service import AIService, BackendError
from .conversation import Conversation
from .supervisor import ToolSupervisor

logger = logging.getLogger(__name__)

MAX_TOOL_TURNS = 10


@dataclass
class AgentEvent:
    kind: str
    data: dict[str, Any] = field(default_factory=dict)


async def run_agent_loop(
    ai_service: AIService,
    conversation: Conversation,
    supervisor: ToolSupervisor,
    tools_openai: list[dict[str, Any]] | None,
    system_prompt: str,
    max_tool_turns: int = MAX_TOOL_TURNS,
) -> AsyncGenerator[AgentEvent, None]:
    """Run the tool-call loop against ``conversation``, yielding events.

    Tool-use responses are answered by ``supervisor`` and appended together
    with their results. The loop ends with the first response that does not
    ask for tools, or when the model asks for more than ``max_tool_turns``
    rounds. In both cases the final response is appended as the assistant
    message, without any tool calls that were not run.

    Backend failures end the loop with an ``error`` event. The user message
    that started the turn stays in the conversation.
    """
    tool_turns = 0
    while True:
        yield AgentEvent(kind="thinking", data={"tool_turns": tool_turns})
        try:
            response = await ai_service.complete(conversation.messages, system_prompt, tools_openai)
        except BackendError as e:
            logger.warning("Backend call failed: %s", e)
            yield AgentEvent(kind="error", data={"message": str(e)})
            return

        if response.wants_tools():
            tool_turns += 1
            if tool_turns > max_tool_turns:
                logger.warning("Stopping after %d tool turns", max_tool_turns)
                yield AgentEvent(kind="turn_limit", data={"max_tool_turns": max_tool_turns})
                _finish(conversation, response)
                text = response.text()
                if text:
                    yield AgentEvent(kind="assistant_message", data={"content": text})
                yield AgentEvent(kind="done", data={"stopped": True})
                return

            requests = response.tool_uses()
            logger.debug("Tool turn %d: %d call(s)", tool_turns, len(requests))
            yield AgentEvent(kind="tool_batch", data={"count": len(requests), "tool_turn": tool_turns})
            results = await supervisor.execute_all(requests)
            conversation.add_tool_exchange(list(response.content), list(results))
            continue

        _finish(conversation, response)
        text = response.text()
        if text:
            yield AgentEvent(kind="assistant_message", data={"content": text})
        yield AgentEvent(kind="done", data={"stopped": False})
        return


def _finish(conversation: Conversation, response: BackendResponse) -> None:
    # Tool calls that were never dispatched would have no matching result.
    text_blocks = [b for b in response.content if isinstance(b, TextBlock)]
    if text_blocks:
        conversation.add_assistant(text_blocks)
