"""Chat service client."""

from .backends import ApiKeyAuth, ChatBackend, CompletionAPIBackend, SessionCookieAuth, WebUIBackend, create_backend
from .conversation import ChatService, Conversation
from .types import ChatMessage, ConversationTurnState, MessagePart, Role

__all__ = [
    "ApiKeyAuth",
    "ChatBackend",
    "ChatMessage",
    "ChatService",
    "CompletionAPIBackend",
    "Conversation",
    "ConversationTurnState",
    "MessagePart",
    "Role",
    "SessionCookieAuth",
    "WebUIBackend",
    "create_backend",
]
