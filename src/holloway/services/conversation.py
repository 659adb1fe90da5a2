"""The conversation history owned by one CLI run."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from ..models import ContentBlock, Message

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50


class Conversation:
    """Ordered message list. Append-only during a turn, trimmed from the front."""

    def __init__(self, messages: list[Message] | None = None) -> None:
        self._messages: list[Message] = list(messages or [])

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def add_user_text(self, text: str) -> Message:
        message = Message(role="user", content=text)
        self._messages.append(message)
        return message

    def add_assistant(self, content: str | list[ContentBlock]) -> Message:
        message = Message(role="assistant", content=content)
        self._messages.append(message)
        return message

    def add_tool_exchange(self, assistant_content: list[ContentBlock], results: list[ContentBlock]) -> None:
        """Append a tool-use message and its tool-result reply as one unit."""
        self._messages.append(Message(role="assistant", content=assistant_content))
        self._messages.append(Message(role="user", content=results))

    def bound_history(self, limit: int = HISTORY_LIMIT) -> int:
        """Drop the oldest messages so at most ``limit`` remain, if that can be done safely.

        The new first message must be a plain-text user message, so a
        tool-use/tool-result pair is never split. If the last ``limit``
        messages hold no such boundary the history is left alone.
        Returns the number of messages dropped.
        """
        if len(self._messages) <= limit:
            return 0
        for index in range(len(self._messages) - limit, len(self._messages)):
            if self._messages[index].is_plain_user():
                del self._messages[:index]
                logger.debug("Trimmed %d message(s) from history", index)
                return index
        logger.debug("No safe boundary in the last %d messages; keeping full history", limit)
        return 0

    def to_json(self) -> list[dict[str, Any]]:
        return [message.model_dump(mode="json") for message in self._messages]

    def save(self, directory: Path, now: datetime | None = None) -> Path:
        """Write the transcript to ``conversation-<timestamp>.json`` in ``directory``."""
        now = now or datetime.now(timezone.utc)
        stamp = now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        path = directory / f"conversation-{stamp.replace(':', '-').replace('.', '-')}.json"
        path.write_text(json.dumps(self.to_json(), indent=2), encoding="utf-8")
        logger.info("Saved %d message(s) to %s", len(self._messages), path)
        return path
