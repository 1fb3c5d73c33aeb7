"""Session orchestration: streamed replies, command approval and follow-ups."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, AsyncIterator, Callable
from contextlib import aclosing
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol

from loguru import logger

from geppetto.chat.types import MessagePart, Role
from geppetto.core.events import (
    CommandResult,
    CommandsOverflow,
    ConfirmRunCommand,
    MessageChunk,
    NewMessage,
    ResponseEvent,
)
from geppetto.core.executor import DEFAULT_COMMAND_TIMEOUT_SECONDS, ExecEvent, ExecOutput, ExecStatus, execute
from geppetto.core.fence import CommandExtractor, CommandMatch, FenceSyntax, PlainText
from geppetto.core.results import (
    DEFAULT_RESULT_BUDGET,
    RESULT_HEADER,
    SPAWN_FAILURE_STATUS,
    CommandResultRecord,
    OutputBudget,
    compose_system_message,
    render_results,
    render_trailer,
    truncate_results,
)
from geppetto.errors import CommandExecutionError

Executor = Callable[[str, Path, float | None], AsyncIterator[ExecEvent]]


class SessionState(StrEnum):
    AWAITING_INPUT = "awaiting_input"
    SENDING_MESSAGE = "sending_message"
    STREAMING_RESPONSE = "streaming_response"
    CONFIRMING_COMMAND = "confirming_command"
    RUNNING_COMMAND = "running_command"
    MESSAGE_COMPLETE = "message_complete"
    AUTO_CONTINUE = "auto_continue"


class ConversationLike(Protocol):
    def send_message(self, text: str, role: Role = Role.USER) -> AsyncIterator[MessagePart]: ...


@dataclass
class _MessageOutcome:
    followup: str | None = None


class Session:
    """Drives one multi-turn session over a conversation.

    ``exchange`` is an async generator of ``ResponseEvent``. It suspends on
    ``ConfirmRunCommand`` (resume with a bool through ``asend``) and on
    ``CommandsOverflow`` (resume with an int). Closing it between two events
    cancels the current message and kills a running command.
    """

    def __init__(
        self,
        conversation: ConversationLike,
        *,
        workspace: Path,
        bootstrap_prompt: str,
        syntax: FenceSyntax | None = None,
        budget: int = DEFAULT_RESULT_BUDGET,
        command_timeout: float | None = DEFAULT_COMMAND_TIMEOUT_SECONDS,
        executor: Executor = execute,
    ) -> None:
        self._conversation = conversation
        self._workspace = workspace
        self._bootstrap_prompt = bootstrap_prompt
        self._syntax = syntax or FenceSyntax()
        self._budget = budget
        self._command_timeout = command_timeout
        self._execute = executor
        self.state = SessionState.AWAITING_INPUT

    def start(self) -> AsyncGenerator[ResponseEvent, Any]:
        return self.exchange(self._bootstrap_prompt)

    async def exchange(self, text: str) -> AsyncGenerator[ResponseEvent, Any]:
        if self.state is not SessionState.AWAITING_INPUT:
            raise RuntimeError(f"session is busy: {self.state}")

        message: str | None = text
        try:
            while message is not None:
                outcome = _MessageOutcome()
                async with aclosing(self._handle_message(message, outcome)) as events:
                    reply: Any = None
                    while True:
                        try:
                            event = await events.asend(reply)
                        except StopAsyncIteration:
                            break
                        reply = yield event
                message = outcome.followup
                if message is not None:
                    self._transition(SessionState.AUTO_CONTINUE)
        except GeneratorExit:
            logger.info("session.cancelled state={}", self.state)
            raise
        finally:
            self._transition(SessionState.AWAITING_INPUT)

    async def _handle_message(self, text: str, outcome: _MessageOutcome) -> AsyncGenerator[ResponseEvent, Any]:
        self._transition(SessionState.SENDING_MESSAGE)
        extractor = CommandExtractor(self._syntax)
        budget = OutputBudget(self._budget)
        records: list[CommandResultRecord] = []

        yield NewMessage()
        self._transition(SessionState.STREAMING_RESPONSE)
        async with aclosing(self._conversation.send_message(text, Role.USER)) as parts:
            async for part in parts:
                for piece in extractor.feed(part.text):
                    match piece:
                        case PlainText(text=chunk):
                            yield MessageChunk(chunk)
                        case CommandMatch(command=command):
                            self._transition(SessionState.CONFIRMING_COMMAND)
                            approved = yield ConfirmRunCommand(command)
                            if not approved:
                                logger.info("session.command.declined command={!r}", command)
                                self._transition(SessionState.STREAMING_RESPONSE)
                                continue
                            record = CommandResultRecord(command=command)
                            records.append(record)
                            async with aclosing(self._run_command(record, budget)) as results:
                                async for event in results:
                                    yield event
                            self._transition(SessionState.STREAMING_RESPONSE)
        for piece in extractor.finish():
            yield MessageChunk(piece.text)
        yield MessageChunk("\n")
        self._transition(SessionState.MESSAGE_COMPLETE)

        if not records:
            return
        results = render_results(records)
        if len(results) > self._budget:
            length = yield CommandsOverflow(default_value=self._budget, actual_length=len(results))
            length = self._budget if length is None else max(int(length), 0)
            logger.info("session.results.truncated actual={} sent={}", len(results), length)
            results = truncate_results(records, length)
        outcome.followup = compose_system_message(results)

    async def _run_command(self, record: CommandResultRecord, budget: OutputBudget) -> AsyncIterator[CommandResult]:
        self._transition(SessionState.RUNNING_COMMAND)
        yield CommandResult(RESULT_HEADER)
        try:
            async with aclosing(self._execute(record.command, self._workspace, self._command_timeout)) as outputs:
                async for output in outputs:
                    match output:
                        case ExecOutput(text=fragment):
                            for result in _split_output(record, budget, fragment):
                                yield result
                        case ExecStatus(code=code):
                            record.status = code
        except CommandExecutionError as exc:
            logger.warning("session.command.spawn_failed command={!r} error={}", record.command, exc)
            for result in _split_output(record, budget, f"Failed to execute the command: {exc}"):
                yield result
            record.status = SPAWN_FAILURE_STATUS
        yield CommandResult(render_trailer(SPAWN_FAILURE_STATUS if record.status is None else record.status))

    def _transition(self, state: SessionState) -> None:
        if state is not self.state:
            logger.debug("session.state {} -> {}", self.state, state)
            self.state = state


def _split_output(record: CommandResultRecord, budget: OutputBudget, fragment: str) -> list[CommandResult]:
    kept, excess = budget.split(fragment)
    record.body += kept
    results = []
    if kept:
        results.append(CommandResult(kept))
    if excess:
        results.append(CommandResult(excess, ignored=True))
    return results


class SessionDriver(Protocol):
    """External caller answering the session's suspension points."""

    async def next_input(self) -> str | None: ...

    async def confirm(self, command: str) -> bool: ...

    async def choose_result_length(self, default_value: int, actual_length: int) -> int: ...

    async def on_event(self, event: ResponseEvent) -> None: ...


async def pump(events: AsyncGenerator[ResponseEvent, Any], driver: SessionDriver) -> None:
    """Feed one exchange's events to ``driver`` and resume its suspension points."""
    async with aclosing(events):
        reply: Any = None
        while True:
            try:
                event = await events.asend(reply)
            except StopAsyncIteration:
                return
            await driver.on_event(event)
            match event:
                case ConfirmRunCommand(command=command):
                    reply = await driver.confirm(command)
                case CommandsOverflow(default_value=default_value, actual_length=actual_length):
                    reply = await driver.choose_result_length(default_value, actual_length)
                case _:
                    reply = None


class SessionRunner:
    """Top-level loop: bootstrap, then one exchange per external input."""

    def __init__(self, session: Session, driver: SessionDriver) -> None:
        self._session = session
        self._driver = driver
        self._current: asyncio.Task[None] | None = None

    async def run(self) -> None:
        await self._run_exchange(self._session.start())
        while (text := await self._driver.next_input()) is not None:
            if not text.strip():
                continue
            await self._run_exchange(self._session.exchange(text))

    def cancel_current(self) -> bool:
        """Cancel the message being processed, if any."""
        if self._current is None or self._current.done():
            return False
        self._current.cancel()
        return True

    async def _run_exchange(self, events: AsyncGenerator[ResponseEvent, Any]) -> None:
        self._current = asyncio.create_task(pump(events, self._driver))
        try:
            await self._current
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            logger.info("session.message.cancelled")
        finally:
            self._current = None


async def run_session(session: Session, driver: SessionDriver) -> None:
    """Run ``session`` until ``driver`` has no more input."""
    await SessionRunner(session, driver).run()
