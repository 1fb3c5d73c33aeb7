"""Shared chat dataclasses."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class MessagePart:
    """One incremental fragment of a model message."""

    text: str


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str


@dataclass
class ConversationTurnState:
    """Identifiers that thread the next outgoing turn to its parent."""

    conversation_id: str | None = None
    last_response_message_id: str | None = None

    def update(self, *, message_id: str | None, conversation_id: str | None) -> None:
        self.last_response_message_id = message_id
        if conversation_id is not None:
            self.conversation_id = conversation_id


@dataclass(frozen=True)
class RoleDelta:
    role: str


@dataclass(frozen=True)
class ContentDelta:
    """Text carried by one frame.

    ``cumulative`` frames repeat the whole message so far instead of only the
    newly generated text.
    """

    text: str
    message_id: str | None = None
    conversation_id: str | None = None
    cumulative: bool = False


@dataclass(frozen=True)
class Finish:
    reason: str = "stop"


Frame = RoleDelta | ContentDelta | Finish
