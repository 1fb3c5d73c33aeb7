"""Command fence detection in streamed model text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import cached_property

DEFAULT_START_MARKER = "=== COMMAND START ==="
DEFAULT_END_MARKER = "=== COMMAND END ==="
INDENT_CHARS = " \t"


@dataclass(frozen=True)
class FenceSyntax:
    """Start and end markers of a command block, each on its own line."""

    start_marker: str = DEFAULT_START_MARKER
    end_marker: str = DEFAULT_END_MARKER

    @classmethod
    def with_session_key(cls, key: str) -> FenceSyntax:
        return cls(start_marker=f"=== COMMAND START {key} ===", end_marker=f"=== COMMAND END {key} ===")

    @cached_property
    def pattern(self) -> re.Pattern[str]:
        return re.compile(
            rf"^(?P<indent>[ \t]*){re.escape(self.start_marker)}\n"
            rf"(?P<body>.*?)\n"
            rf"(?P=indent){re.escape(self.end_marker)}(?=[ \t]*(?:\n|\Z))",
            re.MULTILINE | re.DOTALL,
        )


@dataclass(frozen=True)
class CommandMatch:
    preceding_text: str
    command: str
    indentation: str


@dataclass(frozen=True)
class FenceScan:
    """Outcome of one scan: text safe to show, at most one command, text kept back."""

    flushed: str
    match: CommandMatch | None
    remainder: str


@dataclass(frozen=True)
class PlainText:
    text: str


def scan_fence(buffer: str, syntax: FenceSyntax, *, line_start: bool = True) -> FenceScan:
    """Find the first complete fence in ``buffer``.

    ``line_start`` tells whether ``buffer`` begins at the start of a line.
    Without a complete fence, text from the first line that may still open one
    is held back in the remainder.
    """
    position = 0
    while (found := syntax.pattern.search(buffer, position)) is not None:
        if found.start() == 0 and not line_start:
            # The skipped match may overlap a real fence further down.
            position = 1
            continue
        indent = found.group("indent")
        return FenceScan(
            flushed=buffer[: found.start()],
            match=CommandMatch(
                preceding_text=buffer[: found.start()],
                command=_strip_indent(found.group("body"), indent),
                indentation=indent,
            ),
            remainder=buffer[found.end() :],
        )

    hold = _holdback_index(buffer, syntax, line_start=line_start)
    return FenceScan(flushed=buffer[:hold], match=None, remainder=buffer[hold:])


def _strip_indent(body: str, indent: str) -> str:
    if not indent:
        return body
    return "\n".join(line.removeprefix(indent) for line in body.split("\n"))


def _holdback_index(buffer: str, syntax: FenceSyntax, *, line_start: bool) -> int:
    position = 0 if line_start else buffer.find("\n") + 1
    if position == 0 and not line_start:
        return len(buffer)
    while True:
        newline = buffer.find("\n", position)
        if newline == -1:
            tail = buffer[position:].lstrip(INDENT_CHARS)
            return position if syntax.start_marker.startswith(tail) else len(buffer)
        if buffer[position:newline].lstrip(INDENT_CHARS) == syntax.start_marker:
            return position
        position = newline + 1


class CommandExtractor:
    """Splits one model message into plain text and fenced commands."""

    def __init__(self, syntax: FenceSyntax | None = None) -> None:
        self.syntax = syntax or FenceSyntax()
        self._buffer = ""
        self._line_start = True

    def feed(self, text: str) -> list[PlainText | CommandMatch]:
        self._buffer += text
        pieces: list[PlainText | CommandMatch] = []
        while True:
            scan = scan_fence(self._buffer, self.syntax, line_start=self._line_start)
            if scan.flushed:
                pieces.append(PlainText(scan.flushed))
                self._line_start = scan.flushed.endswith("\n")
            self._buffer = scan.remainder
            if scan.match is None:
                return pieces
            pieces.append(scan.match)
            self._line_start = False

    def finish(self) -> list[PlainText | CommandMatch]:
        """Flush whatever is still held back at end of message."""
        rest, self._buffer = self._buffer, ""
        self._line_start = True
        return [PlainText(rest)] if rest else []
