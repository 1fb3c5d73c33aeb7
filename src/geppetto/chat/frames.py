"""Incremental event-stream decoding and frame classification."""

from __future__ import annotations

import json
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from geppetto.chat.types import ContentDelta, Finish, Frame, Role, RoleDelta
from geppetto.errors import ProtocolViolation, StreamDecodeError, TransportError

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"
FRAME_SEPARATOR = "\n\n"
ROLES = frozenset(role.value for role in Role)


class FrameDecoder:
    """Turns raw body chunks into decoded JSON payloads.

    Frame boundaries may fall anywhere inside a chunk. A frame whose JSON does
    not parse yet is kept, together with everything after it, and retried when
    the next chunk arrives.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._consumed = 0
        self._parse_error: json.JSONDecodeError | None = None
        self._incomplete = False
        self.done = False

    def feed(self, chunk: bytes) -> list[Any]:
        if self.done:
            return []
        self._buffer.extend(chunk)
        parts = self._buffer.decode("utf-8", errors="replace").strip().split(FRAME_SEPARATOR)

        payloads: list[Any] = []
        self._parse_error = None
        self._incomplete = False
        for index in range(self._consumed, len(parts)):
            part = parts[index]
            if not part.startswith(DATA_PREFIX):
                if index == len(parts) - 1 and DATA_PREFIX.startswith(part):
                    self._incomplete = True
                    break
                self._consumed = index + 1
                continue

            data = part[len(DATA_PREFIX) :].strip()
            if data == DONE_SENTINEL:
                self.done = True
                self._reset()
                return payloads
            try:
                payloads.append(json.loads(data))
            except json.JSONDecodeError as exc:
                logger.debug("frames.partial index={} size={}", index, len(data))
                self._parse_error = exc
                break
            self._consumed = index + 1

        if self._parse_error is None and not self._incomplete:
            self._reset()
        return payloads

    def close(self) -> None:
        """Signal end of stream; fails if a frame never became parseable."""
        if self.done or self._parse_error is None:
            return
        raise StreamDecodeError("Response chunk processing ended with an unresolved parsing error") from (
            self._parse_error
        )

    def _reset(self) -> None:
        self._buffer.clear()
        self._consumed = 0


async def iter_payloads(chunks: AsyncIterable[bytes]) -> AsyncIterator[Any]:
    decoder = FrameDecoder()
    async for chunk in chunks:
        for payload in decoder.feed(chunk):
            yield payload
        if decoder.done:
            return
    decoder.close()


class _CompletionChoice(BaseModel):
    delta: dict[str, Any] | None = None
    finish_reason: str | None = None


class _CompletionChunk(BaseModel):
    id: str | None = None
    choices: list[_CompletionChoice] = Field(min_length=1, max_length=1)


def classify_completion_frame(payload: Any) -> Frame:
    """Classify one chat-completions stream payload."""
    try:
        chunk = _CompletionChunk.model_validate(payload)
    except ValidationError as exc:
        raise ProtocolViolation(f"Unknown completion frame: {payload!r}") from exc

    match chunk.choices[0]:
        case _CompletionChoice(finish_reason=str(reason)):
            return Finish(reason)
        case _CompletionChoice(delta={"content": str(text)}):
            return ContentDelta(text=text, message_id=chunk.id)
        case _CompletionChoice(delta={"role": str(role)}) if role in ROLES:
            return RoleDelta(role)
        case choice:
            raise ProtocolViolation(f"Unknown completion choice: {choice!r}")


class _WebAuthor(BaseModel):
    role: str


class _WebContent(BaseModel):
    parts: list[str] = Field(min_length=1, max_length=1)


class _WebMessage(BaseModel):
    id: str
    author: _WebAuthor
    content: _WebContent


class _WebFrame(BaseModel):
    message: _WebMessage | None = None
    conversation_id: str | None = None
    error: Any = None


def classify_web_ui_frame(payload: Any) -> Frame:
    """Classify one web UI conversation payload; content parts are cumulative."""
    try:
        frame = _WebFrame.model_validate(payload)
    except ValidationError as exc:
        raise ProtocolViolation(f"Unknown conversation frame: {payload!r}") from exc

    match frame:
        case _WebFrame(error=error) if error is not None:
            raise TransportError(f"Chat service reported an error: {error!r}")
        case _WebFrame(message=_WebMessage(author=_WebAuthor(role=Role.ASSISTANT)) as message):
            return ContentDelta(
                text=message.content.parts[0],
                message_id=message.id,
                conversation_id=frame.conversation_id,
                cumulative=True,
            )
        case _WebFrame(message=_WebMessage(author=_WebAuthor(role=role))) if role in ROLES:
            return RoleDelta(role)
        case _:
            raise ProtocolViolation(f"Unknown conversation frame: {payload!r}")
