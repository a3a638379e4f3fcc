"""
voxrelay Chat Layer

Platform-neutral chat messages and the relay handler.
"""

from voxrelay.chat.handler import (
    ConversationState,
    ConversationStore,
    RelayHandler,
    UNAVAILABLE_MESSAGE,
)
from voxrelay.chat.models import ChatChannel, ChatMessage, ChatResponse, ChatUser, MessageType

__all__ = [
    # Models
    "ChatChannel",
    "ChatMessage",
    "ChatResponse",
    "ChatUser",
    "MessageType",
    # Handler
    "ConversationState",
    "ConversationStore",
    "RelayHandler",
    "UNAVAILABLE_MESSAGE",
]
