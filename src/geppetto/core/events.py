"""Events produced by one orchestrated exchange."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class NewMessage:
    pass


@dataclass(frozen=True)
class MessageChunk:
    text: str


@dataclass(frozen=True)
class CommandResult:
    """Command output shown to the caller; ``ignored`` output is never sent back."""

    text: str
    ignored: bool = False


@dataclass(frozen=True)
class ConfirmRunCommand:
    """Suspension point, resumed with ``True`` to run the command."""

    command: str


@dataclass(frozen=True)
class CommandsOverflow:
    """Suspension point, resumed with how many result characters to send."""

    default_value: int
    actual_length: int


ResponseEvent = NewMessage | MessageChunk | CommandResult | ConfirmRunCommand | CommandsOverflow
