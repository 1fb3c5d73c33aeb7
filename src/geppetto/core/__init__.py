"""Core module for Geppetto."""

from .events import CommandResult, CommandsOverflow, ConfirmRunCommand, MessageChunk, NewMessage, ResponseEvent
from .session import Session, SessionDriver, SessionRunner, SessionState, run_session

__all__ = [
    "CommandResult",
    "CommandsOverflow",
    "ConfirmRunCommand",
    "MessageChunk",
    "NewMessage",
    "ResponseEvent",
    "Session",
    "SessionDriver",
    "SessionRunner",
    "SessionState",
    "run_session",
]
