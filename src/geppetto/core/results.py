"""Command result framing and the per-message output budget."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

DEFAULT_RESULT_BUDGET = 1000
SYSTEM_MESSAGE_HEADER = "*** LINUX SYSTEM MESSAGE ***\n"
RESULT_HEADER = "=== COMMAND RESULT START ===\n"
RESULT_TRAILER = "\n=== COMMAND RESULT END (status: {code}) ===\n"
SPAWN_FAILURE_STATUS = -1


def render_trailer(code: int) -> str:
    return RESULT_TRAILER.format(code=code)


@dataclass
class CommandResultRecord:
    """In-budget output of one executed command."""

    command: str
    body: str = ""
    status: int | None = None

    def render(self, body_limit: int | None = None) -> str:
        body = self.body if body_limit is None else self.body[:body_limit]
        return RESULT_HEADER + body + render_trailer(SPAWN_FAILURE_STATUS if self.status is None else self.status)

    @property
    def framing_length(self) -> int:
        return len(self.render(body_limit=0))


class OutputBudget:
    """Characters of command output that may still be relayed in this message."""

    def __init__(self, limit: int = DEFAULT_RESULT_BUDGET) -> None:
        self.limit = limit
        self.used = 0

    @property
    def remaining(self) -> int:
        return max(self.limit - self.used, 0)

    def split(self, text: str) -> tuple[str, str]:
        """Return the in-budget head of ``text`` and the excess tail."""
        kept = text[: self.remaining]
        self.used += len(kept)
        return kept, text[len(kept) :]


def render_results(records: Sequence[CommandResultRecord]) -> str:
    return "".join(record.render() for record in records)


def truncate_results(records: Sequence[CommandResultRecord], length: int) -> str:
    """Render ``records`` in at most ``length`` characters.

    Earlier results win: each one is kept whole while it fits, the first that
    does not fit keeps its framing with a shortened body, and the rest are
    dropped.
    """
    remaining = max(length, 0)
    rendered: list[str] = []
    for record in records:
        full = record.render()
        if len(full) <= remaining:
            rendered.append(full)
            remaining -= len(full)
            continue
        if remaining > record.framing_length:
            rendered.append(record.render(body_limit=remaining - record.framing_length))
        break
    return "".join(rendered)


def compose_system_message(results: str) -> str:
    return SYSTEM_MESSAGE_HEADER + results
