"""Relay router - text, speech and chat endpoints."""

import base64
import binascii
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from voxrelay.api.dependencies import RelayServices, get_services
from voxrelay.chat.models import ChatChannel, ChatMessage, ChatUser
from voxrelay.inference.client import InferenceMessage


logger = structlog.get_logger(__name__)

router = APIRouter()


class ContextMessage(BaseModel):
    role: str = Field(..., pattern="^(user|assistant|system)$")
    content: str


class AskRequest(BaseModel):
    """Prompt for the inference endpoint."""

    prompt: str = Field(..., min_length=1)
    context: list[ContextMessage] = Field(default_factory=list)
    retry: bool = False


class AskResponse(BaseModel):
    response: str


class SpeechToTextRequest(BaseModel):
    audio: str = Field(..., description="Base64-encoded 16 kHz mono WAV")


class SpeechToTextResponse(BaseModel):
    text: str


class TextToSpeechRequest(BaseModel):
    text: str = Field(..., min_length=1)
    voice_name: str | None = None


class AudioResponse(BaseModel):
    audio: str = Field(..., description="Base64-encoded audio")
    format: str


class ConversationRequest(BaseModel):
    """One spoken or typed turn; exactly one of text or audio."""

    text: str | None = None
    audio: str | None = None
    context: list[ContextMessage] = Field(default_factory=list)
    speak: bool = True


class ConversationResponse(BaseModel):
    transcript: str
    response: str
    audio: str | None = None
    format: str | None = None


class Participant(BaseModel):
    id: str
    name: str = ""


class Conversation(BaseModel):
    id: str
    name: str = ""
    is_meeting: bool = False


class IncomingMessage(BaseModel):
    """Simplified chat activity as delivered by the messaging platform."""

    id: str
    text: str = ""
    sender: Participant = Field(..., alias="from")
    conversation: Conversation
    reply_to_id: str | None = Field(default=None, alias="replyToId")
    audio: str | None = None

    model_config = {"populate_by_name": True}


class MessageReply(BaseModel):
    text: str
    conversation_id: str
    reply_to_id: str | None = None
    audio: str | None = None
    format: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


def _decode_audio(data: str) -> bytes:
    try:
        audio = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Audio must be valid base64")
    if not audio:
        raise HTTPException(status_code=400, detail="Audio data is required")
    return audio


def _encode_audio(audio: bytes | None) -> str | None:
    return base64.b64encode(audio).decode("ascii") if audio else None


def _context(messages: list[ContextMessage]) -> list[InferenceMessage]:
    return [InferenceMessage(role=m.role, content=m.content) for m in messages]


@router.post("/ask", response_model=AskResponse)
async def ask(
    request: AskRequest,
    services: RelayServices = Depends(get_services),
) -> AskResponse:
    """Send a prompt to the inference endpoint."""
    context = _context(request.context)
    if request.retry:
        reply = await services.inference.complete_with_retry(request.prompt, context)
    else:
        reply = await services.inference.complete(request.prompt, context)
    return AskResponse(response=reply)


@router.post("/speech-to-text", response_model=SpeechToTextResponse)
async def speech_to_text(
    request: SpeechToTextRequest,
    services: RelayServices = Depends(get_services),
) -> SpeechToTextResponse:
    """Transcribe a single utterance."""
    text = await services.speech.transcribe(_decode_audio(request.audio))
    return SpeechToTextResponse(text=text)


@router.post("/text-to-speech", response_model=AudioResponse)
async def text_to_speech(
    request: TextToSpeechRequest,
    services: RelayServices = Depends(get_services),
) -> AudioResponse:
    """Synthesize speech for the given text."""
    audio = await services.speech.synthesize(request.text, request.voice_name)
    return AudioResponse(audio=_encode_audio(audio) or "", format=services.speech.OUTPUT_FORMAT)


@router.post("/conversation", response_model=ConversationResponse)
async def conversation(
    request: ConversationRequest,
    services: RelayServices = Depends(get_services),
) -> ConversationResponse:
    """Run one stateless turn: transcribe if needed, answer, optionally speak."""
    if bool(request.text) == bool(request.audio):
        raise HTTPException(status_code=400, detail="Provide exactly one of 'text' or 'audio'")

    if request.audio:
        transcript = await services.speech.transcribe(_decode_audio(request.audio))
        if not transcript.strip():
            raise HTTPException(status_code=422, detail="No speech recognized in audio")
    else:
        transcript = request.text or ""

    reply = await services.inference.complete(transcript, _context(request.context))

    response = ConversationResponse(transcript=transcript, response=reply)
    if request.speak:
        response.audio = _encode_audio(await services.speech.synthesize(reply))
        response.format = services.speech.OUTPUT_FORMAT
    return response


@router.post("/messages", response_model=MessageReply)
async def messages(
    activity: IncomingMessage,
    services: RelayServices = Depends(get_services),
) -> MessageReply:
    """Hand a chat message to the relay handler and return its reply."""
    message = ChatMessage(
        id=activity.id,
        text=activity.text,
        user=ChatUser(id=activity.sender.id, name=activity.sender.name),
        channel=ChatChannel(
            id=activity.conversation.id,
            name=activity.conversation.name,
            is_meeting=activity.conversation.is_meeting,
        ),
        thread_id=activity.reply_to_id,
        audio=_decode_audio(activity.audio) if activity.audio else None,
    )

    logger.info("Chat message received", message_id=message.id, type=message.message_type.value)
    reply = await services.handler.handle_message(message)

    return MessageReply(
        text=reply.text,
        conversation_id=reply.channel_id,
        reply_to_id=reply.thread_id,
        audio=_encode_audio(reply.audio),
        format=reply.audio_format,
        metadata=reply.metadata,
    )
