"""Application-level exception types for Geppetto."""

from __future__ import annotations


class GeppettoError(Exception):
    """Base exception for Geppetto."""


class ConfigurationError(GeppettoError):
    """Base exception for configuration and startup validation errors."""


class WorkspaceNotFoundError(ConfigurationError):
    """Raised when the configured workspace path does not exist."""


class ApiKeyNotConfiguredError(ConfigurationError):
    """Raised when the completion API backend has no API key."""


class CookieNotConfiguredError(ConfigurationError):
    """Raised when the web UI backend has no session cookie."""


class ChatError(GeppettoError):
    """Base exception for failures talking to the chat service."""


class StreamDecodeError(ChatError):
    """Raised when the event stream ends with an unresolved JSON parse error."""


class ProtocolViolation(ChatError):
    """Raised when a decoded frame has a shape the client does not know."""


class TransportError(ChatError):
    """Raised when the chat service request fails after the auth retry."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmptyResponse(ChatError):
    """Raised when the chat service answers with no body at all."""


class CommandExecutionError(GeppettoError):
    """Raised when a shell command cannot be spawned."""
