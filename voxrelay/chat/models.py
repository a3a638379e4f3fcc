"""
Chat Models

Platform-neutral message types exchanged between a chat platform and the
relay handler.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class MessageType(Enum):
    """Types of chat messages."""

    TEXT = "text"
    COMMAND = "command"
    AUDIO = "audio"


@dataclass
class ChatUser:
    """Represents a chat user."""

    id: str
    name: str
    display_name: str | None = None
    is_bot: bool = False


@dataclass
class ChatChannel:
    """Represents a chat channel, chat or meeting."""

    id: str
    name: str = ""
    is_meeting: bool = False


@dataclass
class ChatMessage:
    """Incoming chat message, typed text or recorded speech."""

    id: str
    text: str
    user: ChatUser
    channel: ChatChannel
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    thread_id: str | None = None
    audio: bytes | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def message_type(self) -> MessageType:
        if self.audio:
            return MessageType.AUDIO
        if self.is_command:
            return MessageType.COMMAND
        return MessageType.TEXT

    @property
    def is_command(self) -> bool:
        """Check if message is a command."""
        return self.text.strip().startswith("/")

    @property
    def command_name(self) -> str | None:
        """Extract command name from message."""
        if self.is_command:
            parts = self.text.strip()[1:].split(maxsplit=1)
            return parts[0].lower() if parts else None
        return None

    @property
    def command_args(self) -> str:
        """Extract command arguments."""
        if self.is_command:
            parts = self.text.strip()[1:].split(maxsplit=1)
            return parts[1] if len(parts) > 1 else ""
        return self.text


@dataclass
class ChatResponse:
    """Outgoing chat response."""

    text: str
    channel_id: str
    thread_id: str | None = None
    audio: bytes | None = None
    audio_format: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
