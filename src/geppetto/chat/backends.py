"""Wire backends for the chat service."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, ClassVar, Protocol

import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError

from geppetto.chat.frames import classify_completion_frame, classify_web_ui_frame
from geppetto.chat.types import ChatMessage, ConversationTurnState, Frame, Role
from geppetto.errors import TransportError

if TYPE_CHECKING:
    from geppetto.config import Settings


class ChatBackend(Protocol):
    """Request and frame shape of one chat service flavour."""

    name: str
    model: str

    async def auth_headers(self, *, refresh: bool = False) -> dict[str, str]: ...

    def build_request(
        self,
        client: httpx.AsyncClient,
        history: Sequence[ChatMessage],
        turn: ConversationTurnState,
        headers: dict[str, str],
    ) -> httpx.Request: ...

    def classify(self, payload: Any) -> Frame: ...


class ApiKeyAuth:
    """Static bearer key; a refresh has nothing new to fetch."""

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

    async def headers(self, *, refresh: bool = False) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}


class CompletionAPIBackend:
    """Streaming chat-completions endpoint; the full history is sent each turn."""

    name = "api"
    DEFAULT_MODEL: ClassVar[str] = "gpt-3.5-turbo"

    def __init__(self, *, api_key: str, api_base: str = "https://api.openai.com/v1", model: str | None = None) -> None:
        self._auth = ApiKeyAuth(api_key)
        self._api_base = api_base.rstrip("/")
        self.model = model or self.DEFAULT_MODEL

    async def auth_headers(self, *, refresh: bool = False) -> dict[str, str]:
        return await self._auth.headers(refresh=refresh)

    def build_request(
        self,
        client: httpx.AsyncClient,
        history: Sequence[ChatMessage],
        turn: ConversationTurnState,
        headers: dict[str, str],
    ) -> httpx.Request:
        payload = {
            "model": self.model,
            "stream": True,
            "messages": [{"role": str(message.role), "content": message.content} for message in history],
        }
        return client.build_request("POST", f"{self._api_base}/chat/completions", json=payload, headers=headers)

    def classify(self, payload: Any) -> Frame:
        return classify_completion_frame(payload)


class _AccessTokenResponse(BaseModel):
    accessToken: str  # noqa: N815


class SessionCookieAuth:
    """Exchanges a browser session cookie for a bearer token."""

    def __init__(
        self,
        *,
        cookie: str,
        user_agent: str,
        client: httpx.AsyncClient,
        base_url: str = "https://chat.openai.com",
    ) -> None:
        self._cookie = cookie
        self._user_agent = user_agent
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._access_token: str | None = None

    async def headers(self, *, refresh: bool = False) -> dict[str, str]:
        if refresh:
            self._access_token = None
        token = await self._get_access_token()
        return {
            "Authorization": f"Bearer {token}",
            "Cookie": self._cookie,
            "User-Agent": self._user_agent,
        }

    async def _get_access_token(self) -> str:
        if self._access_token:
            return self._access_token

        logger.info("auth.session.fetch base_url={}", self._base_url)
        try:
            response = await self._client.get(
                f"{self._base_url}/api/auth/session",
                headers={"Cookie": self._cookie, "User-Agent": self._user_agent},
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"Fetching access token failed: {exc!s}") from exc
        if not response.is_success:
            raise TransportError(
                f"Fetching access token failed: {response.reason_phrase} ({response.status_code})",
                status_code=response.status_code,
            )
        try:
            data = _AccessTokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise TransportError("Unexpected session payload while fetching access token") from exc

        self._access_token = data.accessToken
        return self._access_token


class WebUIBackend:
    """Web UI conversation endpoint; the service keeps history server-side."""

    name = "web"
    DEFAULT_MODEL: ClassVar[str] = "text-davinci-002-render-sha"

    def __init__(
        self,
        *,
        auth: SessionCookieAuth,
        base_url: str = "https://chat.openai.com",
        model: str | None = None,
    ) -> None:
        self._auth = auth
        self._base_url = base_url.rstrip("/")
        self.model = model or self.DEFAULT_MODEL

    async def auth_headers(self, *, refresh: bool = False) -> dict[str, str]:
        return await self._auth.headers(refresh=refresh)

    def build_request(
        self,
        client: httpx.AsyncClient,
        history: Sequence[ChatMessage],
        turn: ConversationTurnState,
        headers: dict[str, str],
    ) -> httpx.Request:
        latest = history[-1]
        role_header = f"=== MESSAGE AUTHOR ROLE: {latest.role} ===\n"
        payload = {
            "action": "next",
            "messages": [
                {
                    "id": str(uuid.uuid4()),
                    "author": {"role": str(Role.USER)},
                    "content": {"content_type": "text", "parts": [role_header + latest.content]},
                }
            ],
            "parent_message_id": turn.last_response_message_id or str(uuid.uuid4()),
            "model": self.model,
        }
        if turn.conversation_id is not None:
            payload["conversation_id"] = turn.conversation_id
        return client.build_request(
            "POST", f"{self._base_url}/backend-api/conversation", json=payload, headers=headers
        )

    def classify(self, payload: Any) -> Frame:
        return classify_web_ui_frame(payload)


def create_backend(settings: Settings, client: httpx.AsyncClient) -> ChatBackend:
    """Build the backend selected in ``settings``."""
    if settings.backend == "web":
        auth = SessionCookieAuth(
            cookie=settings.resolve_cookie(),
            user_agent=settings.user_agent,
            client=client,
            base_url=settings.web_base,
        )
        return WebUIBackend(auth=auth, base_url=settings.web_base, model=settings.model)
    return CompletionAPIBackend(api_key=settings.resolve_api_key(), api_base=settings.api_base, model=settings.model)
