"""Shell command execution with streamed output."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import os
import shutil
import signal
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from loguru import logger

from geppetto.errors import CommandExecutionError

DEFAULT_COMMAND_TIMEOUT_SECONDS = 60.0
READ_CHUNK_SIZE = 4096
KILL_GRACE_SECONDS = 2.0
UNKNOWN_EXIT_CODE = -1


@dataclass(frozen=True)
class ExecOutput:
    kind: Literal["out", "err"]
    text: str


@dataclass(frozen=True)
class ExecStatus:
    code: int
    timed_out: bool = False


ExecEvent = ExecOutput | ExecStatus


async def execute(
    command: str,
    cwd: str | Path,
    timeout: float | None = DEFAULT_COMMAND_TIMEOUT_SECONDS,
) -> AsyncIterator[ExecEvent]:
    """Run ``command`` through bash and stream its output.

    Output fragments arrive in read order; each stream keeps its own write
    order. The last event is always exactly one ``ExecStatus``. The process
    group is killed on timeout and on every early exit of the consumer.
    """
    bash_executable = shutil.which("bash") or "bash"
    try:
        process = await asyncio.create_subprocess_exec(
            bash_executable,
            "-lc",
            command,
            cwd=str(cwd),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except (OSError, ValueError) as exc:
        raise CommandExecutionError(f"{exc!s}") from exc

    logger.info("executor.spawn pid={} timeout={} command={!r}", process.pid, timeout, command)
    queue: asyncio.Queue[ExecOutput | None] = asyncio.Queue()
    readers = [
        asyncio.create_task(_pump(process.stdout, "out", queue)),
        asyncio.create_task(_pump(process.stderr, "err", queue)),
    ]
    loop = asyncio.get_running_loop()
    deadline = None if timeout is None else loop.time() + timeout
    timed_out = False
    open_streams = len(readers)
    try:
        while open_streams:
            wait_for = None
            if deadline is not None and not timed_out:
                wait_for = max(deadline - loop.time(), 0)
            elif timed_out:
                wait_for = KILL_GRACE_SECONDS
            try:
                async with asyncio.timeout(wait_for):
                    item = await queue.get()
            except TimeoutError:
                if timed_out:
                    # Grandchildren outside the group may still hold the pipes.
                    logger.warning("executor.pipes_stuck pid={}", process.pid)
                    break
                timed_out = True
                logger.warning("executor.timeout pid={} timeout={}", process.pid, timeout)
                _kill_group(process)
                continue
            if item is None:
                open_streams -= 1
                continue
            yield item

        code = await process.wait()
        logger.info("executor.exit pid={} code={} timed_out={}", process.pid, code, timed_out)
        yield ExecStatus(code=UNKNOWN_EXIT_CODE if code is None else code, timed_out=timed_out)
    finally:
        for reader in readers:
            reader.cancel()
        await asyncio.gather(*readers, return_exceptions=True)
        if process.returncode is None:
            _kill_group(process)
            with contextlib.suppress(ProcessLookupError):
                await process.wait()
            logger.info("executor.killed pid={}", process.pid)


async def _pump(
    stream: asyncio.StreamReader | None,
    kind: Literal["out", "err"],
    queue: asyncio.Queue[ExecOutput | None],
) -> None:
    try:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while chunk := await stream.read(READ_CHUNK_SIZE):
            if text := decoder.decode(chunk):
                queue.put_nowait(ExecOutput(kind=kind, text=text))
        if tail := decoder.decode(b"", final=True):
            queue.put_nowait(ExecOutput(kind=kind, text=tail))
    finally:
        queue.put_nowait(None)


def _kill_group(process: asyncio.subprocess.Process) -> None:
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        with contextlib.suppress(ProcessLookupError):
            process.kill()
