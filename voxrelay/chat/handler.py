"""
Relay Handler

Turns incoming chat messages into replies: speech is transcribed, the text is
sent to the inference endpoint with recent conversation context, and the
reply is optionally synthesized back to audio.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import structlog

from voxrelay.chat.models import ChatMessage, ChatResponse
from voxrelay.credentials.errors import CredentialError
from voxrelay.credentials.resolver import CredentialResolver
from voxrelay.inference.client import FoundryClient, InferenceError, InferenceMessage
from voxrelay.speech.service import SpeechError, SpeechService

logger = structlog.get_logger(__name__)

UNAVAILABLE_MESSAGE = "The service is temporarily unavailable. Please try again in a moment."
NOT_UNDERSTOOD_MESSAGE = "I couldn't understand the audio. Could you say that again?"

# Messages kept per conversation
HISTORY_LIMIT = 20
CONVERSATION_TTL = timedelta(minutes=30)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ConversationState:
    """State of an ongoing conversation."""

    user_id: str
    channel_id: str
    thread_id: str | None = None
    voice_enabled: bool = False
    history: deque[InferenceMessage] = field(default_factory=lambda: deque(maxlen=HISTORY_LIMIT))
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    message_count: int = 0

    def update(self) -> None:
        """Update the last activity timestamp."""
        self.updated_at = _utcnow()
        self.message_count += 1

    def add_turn(self, role: str, content: str) -> None:
        self.history.append(InferenceMessage(role=role, content=content))

    @property
    def context(self) -> list[InferenceMessage]:
        return list(self.history)

    @property
    def is_expired(self) -> bool:
        """Check if conversation has expired (30 min inactivity)."""
        return _utcnow() - self.updated_at > CONVERSATION_TTL


class ConversationStore:
    """In-memory store for conversation states."""

    def __init__(self) -> None:
        self._conversations: dict[str, ConversationState] = {}

    def _key(self, user_id: str, channel_id: str, thread_id: str | None) -> str:
        """Generate storage key."""
        return f"{channel_id}:{thread_id or 'main'}:{user_id}"

    def get(
        self,
        user_id: str,
        channel_id: str,
        thread_id: str | None = None,
    ) -> ConversationState | None:
        """Get conversation state."""
        key = self._key(user_id, channel_id, thread_id)
        state = self._conversations.get(key)
        if state and state.is_expired:
            del self._conversations[key]
            return None
        return state

    def create(
        self,
        user_id: str,
        channel_id: str,
        thread_id: str | None = None,
    ) -> ConversationState:
        """Create new conversation state."""
        state = ConversationState(user_id=user_id, channel_id=channel_id, thread_id=thread_id)
        self._conversations[self._key(user_id, channel_id, thread_id)] = state
        return state

    def get_or_create(
        self,
        user_id: str,
        channel_id: str,
        thread_id: str | None = None,
    ) -> ConversationState:
        """Get existing or create new conversation."""
        state = self.get(user_id, channel_id, thread_id)
        if state is None:
            state = self.create(user_id, channel_id, thread_id)
        return state

    def delete(
        self,
        user_id: str,
        channel_id: str,
        thread_id: str | None = None,
    ) -> None:
        """Delete conversation state."""
        self._conversations.pop(self._key(user_id, channel_id, thread_id), None)

    def cleanup_expired(self) -> int:
        """Remove expired conversations. Returns count removed."""
        expired = [key for key, state in self._conversations.items() if state.is_expired]
        for key in expired:
            del self._conversations[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._conversations)


class RelayHandler:
    """
    Main handler for chat messages.

    Failures of the credential chain, the inference endpoint or the speech
    engine never reach the user as stack traces; they get a generic
    "temporarily unavailable" reply while the logs keep the details.
    """

    COMMANDS = {
        "help": "Show available commands",
        "reset": "Forget the current conversation",
        "status": "Show service status",
        "voice": "Turn spoken replies on or off (`/voice on`, `/voice off`)",
    }

    def __init__(
        self,
        inference: FoundryClient,
        speech: SpeechService | None = None,
        resolver: CredentialResolver | None = None,
        conversations: ConversationStore | None = None,
    ) -> None:
        """
        Initialize the handler.

        Args:
            inference: Client for the inference endpoint
            speech: Speech engine, required for audio in or out
            resolver: Credential resolver, only used for /status
            conversations: Conversation store (a fresh one by default)
        """
        self.inference = inference
        self.speech = speech
        self.resolver = resolver
        self.conversations = conversations or ConversationStore()

    def _reply(self, message: ChatMessage, text: str, **kwargs) -> ChatResponse:
        return ChatResponse(
            text=text,
            channel_id=message.channel.id,
            thread_id=message.thread_id,
            **kwargs,
        )

    async def handle_message(self, message: ChatMessage) -> ChatResponse:
        """
        Handle an incoming chat message.

        Args:
            message: Incoming message

        Returns:
            Response to send
        """
        removed = self.conversations.cleanup_expired()
        if removed:
            logger.debug("Expired conversations removed", count=removed)

        state = self.conversations.get_or_create(
            message.user.id,
            message.channel.id,
            message.thread_id,
        )
        state.update()

        if message.audio is None and message.is_command and message.command_name:
            return await self._handle_command(message.command_name, message, state)

        try:
            return await self._relay(message, state)
        except (CredentialError, InferenceError, SpeechError) as e:
            logger.error(
                "Failed to relay message",
                error=str(e),
                error_type=type(e).__name__,
                user_id=message.user.id,
                channel_id=message.channel.id,
            )
            return self._reply(message, UNAVAILABLE_MESSAGE)

    async def _relay(self, message: ChatMessage, state: ConversationState) -> ChatResponse:
        text = message.text.strip()

        if message.audio:
            if self.speech is None:
                raise SpeechError("Speech input received but no speech service is configured")
            text = (await self.speech.transcribe(message.audio)).strip()
            if not text:
                return self._reply(message, NOT_UNDERSTOOD_MESSAGE)

        if not text:
            return self._reply(message, "Just type or say your question and I'll help.")

        logger.info(
            "Relaying message",
            user_id=message.user.id,
            channel_id=message.channel.id,
            spoken=message.audio is not None,
            text_length=len(text),
        )

        reply = await self.inference.complete(text, state.context)
        state.add_turn("user", text)
        state.add_turn("assistant", reply)

        response = self._reply(message, reply, metadata={"transcript": text} if message.audio else {})

        if self.speech is not None and (state.voice_enabled or message.audio):
            try:
                response.audio = await self.speech.synthesize(reply)
                response.audio_format = self.speech.OUTPUT_FORMAT
            except SpeechError as e:
                # The text reply is still useful without audio
                logger.warning("Speech synthesis failed, replying with text only", error=str(e))

        return response

    async def _handle_command(
        self,
        command: str,
        message: ChatMessage,
        state: ConversationState,
    ) -> ChatResponse:
        """Handle a command message."""
        handlers = {
            "help": self._cmd_help,
            "reset": self._cmd_reset,
            "status": self._cmd_status,
            "voice": self._cmd_voice,
        }

        handler = handlers.get(command)
        if handler:
            return await handler(message, state)

        return self._reply(
            message,
            f"Unknown command: `/{command}`. Use `/help` to see available commands.",
        )

    async def _cmd_help(self, message: ChatMessage, state: ConversationState) -> ChatResponse:
        lines = ["I'm your AI assistant. Type or speak your question, or use a command:", ""]
        lines.extend(f"- `/{name}`: {description}" for name, description in self.COMMANDS.items())
        return self._reply(message, "\n".join(lines))

    async def _cmd_reset(self, message: ChatMessage, state: ConversationState) -> ChatResponse:
        self.conversations.delete(message.user.id, message.channel.id, message.thread_id)
        return self._reply(message, "Conversation cleared. What would you like to talk about?")

    async def _cmd_voice(self, message: ChatMessage, state: ConversationState) -> ChatResponse:
        arg = message.command_args.strip().lower()
        if arg not in ("on", "off"):
            mode = "on" if state.voice_enabled else "off"
            return self._reply(message, f"Spoken replies are {mode}. Use `/voice on` or `/voice off`.")

        if arg == "on" and self.speech is None:
            return self._reply(message, "Spoken replies are not available right now.")

        state.voice_enabled = arg == "on"
        return self._reply(message, f"Spoken replies turned {arg}.")

    async def _cmd_status(self, message: ChatMessage, state: ConversationState) -> ChatResponse:
        lines = ["Service status:"]
        if self.resolver is not None:
            health = self.resolver.get_health_status()
            lines.append(f"- Credentials: {health.credential} ({health.state.value})")
            lines.append(f"- Key Vault: {health.key_vault_uri}")
        inference_health = self.inference.get_health_status()
        lines.append(f"- Inference endpoint: {inference_health['endpoint']}")
        if self.speech is not None:
            lines.append(f"- Speech: {'configured' if self.speech.is_configured else 'missing'}")
        lines.append(f"- Messages in this conversation: {state.message_count}")
        return self._reply(message, "\n".join(lines))
