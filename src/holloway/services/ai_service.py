"""OpenAI SDK wrapper that speaks content blocks.

The rest of the program works with ``Message`` objects whose content is plain
text or a list of text / tool_use / tool_result blocks. This module converts
that history to chat-completions messages, makes one non-streaming request,
and converts the reply back into blocks plus a stop reason.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Sequence

import httpx
from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    BadRequestError,
    RateLimitError,
)

from ..config import AIConfig
from ..models import BackendResponse, ContentBlock, Message, TextBlock, ToolResultBlock, ToolUseBlock

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """The model backend could not produce a response."""


def to_openai_messages(system_prompt: str, messages: Sequence[Message]) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    if system_prompt:
        out.append({"role": "system", "content": system_prompt})

    for message in messages:
        if isinstance(message.content, str):
            out.append({"role": message.role, "content": message.content})
            continue

        texts = [b.text for b in message.content if isinstance(b, TextBlock)]
        if message.role == "assistant":
            entry: dict[str, Any] = {"role": "assistant", "content": "".join(texts)}
            tool_calls = [
                {
                    "id": b.id,
                    "type": "function",
                    "function": {"name": b.name, "arguments": json.dumps(b.input)},
                }
                for b in message.content
                if isinstance(b, ToolUseBlock)
            ]
            if tool_calls:
                entry["tool_calls"] = tool_calls
                entry["content"] = entry["content"] or None
            out.append(entry)
            continue

        # Tool results must directly follow the assistant message that asked for them.
        for block in message.content:
            if isinstance(block, ToolResultBlock):
                content = block.content
                if block.is_error and not content.startswith("Error"):
                    content = f"Error: {content}"
                out.append({"role": "tool", "tool_call_id": block.tool_use_id, "content": content})
        if texts:
            out.append({"role": "user", "content": "".join(texts)})
    return out


def _parse_arguments(raw: str | None) -> Any:
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        # Left as a string so input validation reports the malformed shape.
        logger.warning("Model sent tool arguments that are not JSON: %.200s", raw)
        return raw


def from_openai_choice(choice: Any) -> BackendResponse:
    message = choice.message
    blocks: list[ContentBlock] = []
    if message.content:
        blocks.append(TextBlock(text=message.content))
    for call in message.tool_calls or []:
        blocks.append(ToolUseBlock(id=call.id, name=call.function.name, input=_parse_arguments(call.function.arguments)))

    finish = choice.finish_reason
    if message.tool_calls and finish != "length":
        # Some OpenAI-compatible servers report "stop" alongside tool calls.
        stop_reason = "tool_use"
    elif finish == "length":
        stop_reason = "max_tokens"
    else:
        stop_reason = "end_turn"
    return BackendResponse(content=blocks, stop_reason=stop_reason)


class AIService:
    def __init__(self, config: AIConfig) -> None:
        self.config = config
        self._build_client()

    def _build_client(self) -> None:
        timeout = httpx.Timeout(float(self.config.request_timeout), connect=10.0)
        # SECURITY-REVIEW: verify=False only when user explicitly sets verify_ssl: false in config
        http_client = httpx.AsyncClient(verify=self.config.verify_ssl, timeout=timeout)
        self.client = AsyncOpenAI(
            base_url=self.config.base_url,
            api_key=self.config.api_key,
            http_client=http_client,
        )

    async def complete(
        self,
        messages: Sequence[Message],
        system_prompt: str,
        tools: list[dict[str, Any]] | None = None,
    ) -> BackendResponse:
        """Send the history and tool catalog, return the reply as content blocks."""
        params: dict[str, Any] = {
            "model": self.config.model,
            "messages": to_openai_messages(system_prompt, messages),
            "max_completion_tokens": self.config.max_tokens,
        }
        if tools:
            params["tools"] = tools

        try:
            response = await self.client.chat.completions.create(**params)
        except AuthenticationError as e:
            logger.error("Authentication failed for %s", self.config.base_url)
            raise BackendError("Authentication failed. Check your API key.") from e
        except RateLimitError as e:
            logger.warning("Rate limited by %s", self.config.base_url)
            raise BackendError("Rate limited by the AI service. Try again shortly.") from e
        except APITimeoutError as e:
            logger.warning("Request to %s timed out", self.config.base_url)
            raise BackendError(f"AI request timed out after {self.config.request_timeout}s.") from e
        except APIConnectionError as e:
            logger.warning("Cannot connect to API at %s", self.config.base_url)
            raise BackendError(f"Cannot connect to AI service at {self.config.base_url}.") from e
        except BadRequestError as e:
            logger.error("Bad request: %s", e)
            raise BackendError(f"AI service rejected the request: {e.message}") from e
        except APIStatusError as e:
            logger.error("AI service returned HTTP %s", e.status_code)
            raise BackendError(f"AI service error (HTTP {e.status_code}).") from e
        except APIError as e:
            logger.error("AI service error: %s", e)
            raise BackendError(f"AI service error: {e.message}") from e

        if not response.choices:
            raise BackendError("AI service returned no choices.")
        return from_openai_choice(response.choices[0])

    async def validate_connection(self) -> tuple[bool, str, list[str]]:
        try:
            models = await self.client.models.list()
            model_ids = [m.id for m in models.data]
            return True, "Connected successfully", model_ids
        except AuthenticationError:
            logger.error("Authentication failed during connection validation")
            return False, "Authentication failed. Check your API key.", []
        except APITimeoutError:
            logger.warning("Connection validation timed out")
            return False, "Connection timed out. The API may be slow or unreachable.", []
        except APIConnectionError:
            logger.warning("Cannot connect to API at %s", self.config.base_url)
            return (
                False,
                f"Cannot connect to API at {self.config.base_url}. Check the URL and your network connection.",
                [],
            )
        except APIStatusError as e:
            logger.error("AI connection validation failed: %s", e)
            return False, f"Connection to AI service failed (HTTP {e.status_code})", []
        except APIError as e:
            logger.error("AI connection validation failed: %s", e)
            return False, f"Connection to AI service failed: {e.message}", []

    async def close(self) -> None:
        await self.client.close()
