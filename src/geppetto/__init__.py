"""Geppetto - a linux system joins the chat."""

from .chat.conversation import ChatService, Conversation
from .core.session import Session, SessionRunner

__version__ = "0.1.0"

__all__ = ["ChatService", "Conversation", "Session", "SessionRunner"]
