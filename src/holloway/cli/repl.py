"""REPL loop for the Holloway CLI."""

from __future__ import annotations

import asyncio
import logging
import os
import platform
import signal
from pathlib import Path
from typing import Any, Protocol

from ..config import AppConfig
from ..models import ToolResultBlock, ToolUseBlock
from ..services.agent_loop import run_agent_loop
from ..services.ai_service import AIService
from ..services.conversation import Conversation
from ..services.supervisor import ToolSupervisor
from ..tools import ToolRegistry, build_default_registry
from . import renderer

logger = logging.getLogger(__name__)

_IS_WINDOWS = platform.system() == "Windows"

IDLE = "idle"
INFERRING = "inferring"
DRAINING = "draining"

_EXIT_COMMANDS = ("exit", "quit")
_APPROVE_ANSWERS = ("yes", "y")


def _add_signal_handler(loop: asyncio.AbstractEventLoop, sig: int, callback: Any) -> bool:
    """Add a signal handler, returning False on Windows where it's unsupported."""
    if _IS_WINDOWS:
        return False
    try:
        loop.add_signal_handler(sig, callback)
        return True
    except NotImplementedError:
        return False


def _remove_signal_handler(loop: asyncio.AbstractEventLoop, sig: int) -> None:
    """Remove a signal handler, no-op on Windows."""
    if _IS_WINDOWS:
        return
    try:
        loop.remove_signal_handler(sig)
    except NotImplementedError:
        pass


class LineReader(Protocol):
    async def read_line(self, prompt: str) -> str | None:
        """Return the next line, or None at end of input."""
        ...


class PromptLineReader:
    """prompt_toolkit-backed line source for chat input and approvals."""

    def __init__(self, session: Any = None) -> None:
        if session is None:
            from prompt_toolkit import PromptSession

            session = PromptSession()
        self._session = session

    async def read_line(self, prompt: str) -> str | None:
        try:
            return await self._session.prompt_async(prompt)
        except EOFError:
            return None


class ChatSession:
    """Owns the conversation and drives Idle -> Inferring -> Draining."""

    def __init__(
        self,
        ai_service: AIService,
        registry: ToolRegistry,
        reader: LineReader,
        working_dir: str,
        system_prompt: str,
        max_tool_turns: int = 10,
        history_limit: int = 50,
        tool_timeout: float = 30.0,
        preview_chars: int = 100,
    ) -> None:
        self.ai_service = ai_service
        self.registry = registry
        self.reader = reader
        self.working_dir = working_dir
        self.system_prompt = system_prompt
        self.max_tool_turns = max_tool_turns
        self.history_limit = history_limit
        self.conversation = Conversation()
        self.state = IDLE
        self.saved_path: Path | None = None
        self._interrupted = False
        self._task: asyncio.Task[None] | None = None
        self.supervisor = ToolSupervisor(
            registry,
            approve=self._approve,
            timeout=tool_timeout,
            preview_chars=preview_chars,
            on_start=self._on_tool_start,
            on_result=self._on_tool_result,
        )

    async def run(self) -> int:
        """Run until exit, end of input or an interrupt, then save the transcript. Always returns 0."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            _add_signal_handler(loop, sig, self.handle_interrupt)

        self._task = asyncio.create_task(self._loop())
        try:
            await asyncio.wait({self._task})
            if not self._task.cancelled():
                self._task.result()
        finally:
            renderer.stop_thinking()
            # Handlers stay installed while saving so a second signal is absorbed.
            try:
                self.drain()
            finally:
                for sig in (signal.SIGINT, signal.SIGTERM):
                    _remove_signal_handler(loop, sig)
        return 0

    def handle_interrupt(self) -> None:
        """First interrupt cancels the running turn or prompt; later ones do nothing."""
        if self._interrupted or self.state == DRAINING:
            return
        self._interrupted = True
        logger.info("Interrupt received in state %s", self.state)
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def drain(self) -> Path | None:
        """Write the transcript to the working directory, at most once."""
        if self.state == DRAINING:
            return None
        self.state = DRAINING
        if len(self.conversation) == 0:
            renderer.render_goodbye()
            return None

        renderer.render_saving()
        try:
            self.saved_path = self.conversation.save(Path(self.working_dir))
        except OSError as e:
            logger.exception("Failed to save conversation")
            renderer.render_save_failed(str(e))
        else:
            renderer.render_saved(str(self.saved_path))
        renderer.render_goodbye()
        return self.saved_path

    async def _loop(self) -> None:
        while True:
            self.state = IDLE
            try:
                line = await self.reader.read_line("You: ")
            except KeyboardInterrupt:
                self._interrupted = True
                return
            if line is None:
                return

            text = line.strip()
            if not text:
                continue
            if text.lower() in _EXIT_COMMANDS:
                return

            self.conversation.add_user_text(line)
            dropped = self.conversation.bound_history(self.history_limit)
            if dropped:
                logger.debug("History bounded: dropped %d message(s)", dropped)
            self.state = INFERRING
            try:
                await self.handle_turn()
            finally:
                renderer.stop_thinking()

    async def handle_turn(self) -> None:
        async for event in run_agent_loop(
            self.ai_service,
            self.conversation,
            self.supervisor,
            self.registry.get_openai_tools(),
            self.system_prompt,
            max_tool_turns=self.max_tool_turns,
        ):
            if event.kind == "thinking":
                renderer.start_thinking()
                continue
            renderer.stop_thinking()
            if event.kind == "turn_limit":
                renderer.render_turn_limit(event.data["max_tool_turns"])
            elif event.kind == "assistant_message":
                renderer.render_response(event.data["content"])
            elif event.kind == "error":
                renderer.render_error(event.data["message"])

    async def _approve(self, request: ToolUseBlock) -> bool:
        renderer.stop_thinking()
        answer = await self.reader.read_line(renderer.render_approval_prompt())
        approved = answer is not None and answer.strip().lower() in _APPROVE_ANSWERS
        logger.info("Approval for %s (%s): %s", request.name, request.id, "granted" if approved else "declined")
        renderer.render_approval(approved)
        return approved

    def _on_tool_start(self, request: ToolUseBlock) -> None:
        renderer.stop_thinking()
        renderer.render_tool_call_start(request.name, request.input)

    def _on_tool_result(self, request: ToolUseBlock, result: ToolResultBlock, preview: str) -> None:
        renderer.render_tool_call_end(request.name, result.is_error, preview)


async def run_cli(config: AppConfig) -> int:
    working_dir = os.getcwd()
    ai_service = AIService(config.ai)
    registry = build_default_registry(working_dir, timezone=config.cli.timezone, on_diff=renderer.render_diff)
    session = ChatSession(
        ai_service,
        registry,
        PromptLineReader(),
        working_dir,
        config.ai.system_prompt,
        max_tool_turns=config.cli.max_tool_turns,
        history_limit=config.cli.history_limit,
        tool_timeout=config.cli.tool_timeout,
        preview_chars=config.cli.result_preview_chars,
    )
    renderer.render_welcome(config.ai.model, len(registry), working_dir)
    try:
        return await session.run()
    finally:
        await ai_service.close()
