"""Conversation client over a streaming chat backend."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing

import httpx
from loguru import logger

from geppetto.chat.backends import ChatBackend
from geppetto.chat.frames import iter_payloads
from geppetto.chat.types import ChatMessage, ContentDelta, ConversationTurnState, Finish, MessagePart, Role, RoleDelta
from geppetto.errors import EmptyResponse, TransportError

MAX_ATTEMPTS = 2
ERROR_BODY_LIMIT = 500


class ChatService:
    """Entry point handing out independent conversations."""

    def __init__(self, backend: ChatBackend, client: httpx.AsyncClient) -> None:
        self.backend = backend
        self._client = client

    def new_conversation(self) -> Conversation:
        return Conversation(self.backend, self._client)


class Conversation:
    """One logical exchange with the remote model."""

    def __init__(self, backend: ChatBackend, client: httpx.AsyncClient) -> None:
        self._backend = backend
        self._client = client
        self.history: list[ChatMessage] = []
        self.turn = ConversationTurnState()

    async def send_message(self, text: str, role: Role = Role.USER) -> AsyncIterator[MessagePart]:
        """Send one message and stream the reply.

        Once the request is accepted the assistant turn is always recorded, even
        when the stream is closed before any text arrives. A message that never
        reached the service is taken back out of the history.
        """
        self.history.append(ChatMessage(role=role, content=text))
        response: httpx.Response | None = None
        received: list[str] = []
        completed = False
        try:
            response = await self._open_stream()
            async with aclosing(self._read_parts(response)) as parts:
                async for part in parts:
                    received.append(part.text)
                    yield part
            completed = True
        finally:
            if response is None:
                self.history.pop()
            else:
                await response.aclose()
                self.history.append(ChatMessage(role=Role.ASSISTANT, content="".join(received)))
            logger.info(
                "conversation.received backend={} chars={} completed={}",
                self._backend.name,
                sum(len(chunk) for chunk in received),
                completed,
            )

    async def _open_stream(self) -> httpx.Response:
        for attempt in range(MAX_ATTEMPTS):
            headers = await self._backend.auth_headers(refresh=attempt > 0)
            request = self._backend.build_request(self._client, self.history, self.turn, headers)
            logger.info("conversation.send backend={} attempt={}", self._backend.name, attempt + 1)
            try:
                response = await self._client.send(request, stream=True)
            except httpx.HTTPError as exc:
                raise TransportError(f"Request to send message failed: {exc!s}") from exc
            if response.is_success:
                return response

            body = (await response.aread()).decode("utf-8", errors="replace")
            await response.aclose()
            logger.warning(
                "conversation.rejected status={} attempt={} body={}",
                response.status_code,
                attempt + 1,
                body[:ERROR_BODY_LIMIT],
            )
            if attempt + 1 >= MAX_ATTEMPTS:
                raise TransportError(
                    f"Request to send message failed: {response.reason_phrase} ({response.status_code})",
                    status_code=response.status_code,
                )
        raise AssertionError("unreachable")


    async def _read_parts(self, response: httpx.Response) -> AsyncIterator[MessagePart]:
        received_bytes = 0

        async def chunks() -> AsyncIterator[bytes]:
            nonlocal received_bytes
            async for chunk in response.aiter_bytes():
                received_bytes += len(chunk)
                yield chunk

        previous_text = ""
        first_content = True
        try:
            async with aclosing(chunks()) as body, aclosing(iter_payloads(body)) as payloads:
                async for payload in payloads:
                    match self._backend.classify(payload):
                        case Finish():
                            return
                        case RoleDelta():
                            continue
                        case ContentDelta() as delta:
                            if first_content:
                                self.turn.update(message_id=delta.message_id, conversation_id=delta.conversation_id)
                                first_content = False
                            text = delta.text
                            if delta.cumulative:
                                text = text[len(previous_text) :] if text.startswith(previous_text) else text
                                previous_text = delta.text
                            yield MessagePart(text=text)
        except httpx.HTTPError as exc:
            raise TransportError(f"Reading response stream failed: {exc!s}") from exc

        if received_bytes == 0:
            raise EmptyResponse("No data received after sending message")
