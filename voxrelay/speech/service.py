"""
Speech Service

Speech-to-text and text-to-speech over the Azure Speech REST API.
Treated by the rest of the relay as an opaque transcribe / synthesize pair.
"""

from __future__ import annotations

from pathlib import Path
from xml.sax.saxutils import escape, quoteattr

import httpx
import structlog

from voxrelay import __version__
from voxrelay.config import SpeechSettings

logger = structlog.get_logger(__name__)


class SpeechError(Exception):
    """Base class for speech errors."""

    pass


class SpeechConfigurationError(SpeechError):
    """Key or region missing."""

    pass


class SpeechService:
    """
    Azure Speech client.

    Uses the short-audio recognition endpoint (single utterance, up to about
    60 seconds of 16 kHz mono PCM WAV) and the neural TTS endpoint.
    """

    OUTPUT_FORMAT = "audio-16khz-32kbitrate-mono-mp3"
    INPUT_CONTENT_TYPE = "audio/wav; codecs=audio/pcm; samplerate=16000"

    # Recognition statuses that mean "nothing was said", not an error
    _SILENT_STATUSES = {"NoMatch", "InitialSilenceTimeout", "BabbleTimeout"}

    def __init__(
        self,
        settings: SpeechSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.settings.timeout_seconds,
                transport=self._transport,
                headers={"User-Agent": f"voxrelay/{__version__}"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.key and self.settings.region)

    def _require_config(self) -> tuple[str, str]:
        if not self.settings.key or not self.settings.region:
            raise SpeechConfigurationError("Speech service key and region must be configured")
        return self.settings.key, self.settings.region

    def build_ssml(self, text: str, voice_name: str | None = None) -> str:
        """Wrap text in a minimal SSML document for the given voice."""
        voice = voice_name or self.settings.voice_name
        return (
            f'<speak version="1.0" xmlns="http://www.w3.org/2001/10/synthesis" '
            f"xml:lang={quoteattr(self.settings.language)}>"
            f"<voice name={quoteattr(voice)}>{escape(text)}</voice>"
            "</speak>"
        )

    async def transcribe(self, audio: bytes) -> str:
        """
        Recognize a single utterance.

        Args:
            audio: 16 kHz mono PCM WAV bytes

        Returns:
            Recognized text, or "" when no speech was detected
        """
        if not audio:
            raise ValueError("Audio data is required")
        key, region = self._require_config()

        client = await self._get_client()
        url = (
            f"https://{region}.stt.speech.microsoft.com"
            "/speech/recognition/conversation/cognitiveservices/v1"
        )
        try:
            response = await client.post(
                url,
                params={"language": self.settings.language, "format": "simple"},
                content=audio,
                headers={
                    "Ocp-Apim-Subscription-Key": key,
                    "Content-Type": self.INPUT_CONTENT_TYPE,
                    "Accept": "application/json",
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Speech recognition request failed", error=str(e))
            raise SpeechError(f"Speech recognition failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            logger.error("Speech recognition returned a non-JSON body")
            raise SpeechError("Speech recognition returned an unreadable response") from e
        if not isinstance(data, dict):
            raise SpeechError("Speech recognition returned an unreadable response")

        status = data.get("RecognitionStatus")
        if status == "Success":
            text = data.get("DisplayText", "")
            logger.info("Speech recognized", text_length=len(text))
            return text
        if status in self._SILENT_STATUSES:
            logger.warning("Speech not recognized", status=status)
            return ""

        logger.error("Speech recognition error", status=status)
        raise SpeechError(f"Speech recognition error: {status}")

    async def synthesize(self, text: str, voice_name: str | None = None) -> bytes:
        """
        Convert text to speech.

        Returns:
            MP3 audio bytes
        """
        if not text or not text.strip():
            raise ValueError("Text is required for speech synthesis")
        key, region = self._require_config()

        client = await self._get_client()
        url = f"https://{region}.tts.speech.microsoft.com/cognitiveservices/v1"
        try:
            response = await client.post(
                url,
                content=self.build_ssml(text, voice_name).encode("utf-8"),
                headers={
                    "Ocp-Apim-Subscription-Key": key,
                    "Content-Type": "application/ssml+xml",
                    "X-Microsoft-OutputFormat": self.OUTPUT_FORMAT,
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Speech synthesis request failed", error=str(e))
            raise SpeechError(f"Speech synthesis failed: {e}") from e

        audio = response.content
        logger.info("Speech synthesis completed", text_length=len(text), audio_length=len(audio))
        return audio

    async def save_audio(self, audio: bytes, path: str | Path) -> Path:
        """Write synthesized audio to disk."""
        target = Path(path)
        target.write_bytes(audio)
        logger.info("Audio saved to file", path=str(target), size=len(audio))
        return target

    def get_health_status(self) -> dict[str, str]:
        return {
            "key": "configured" if self.settings.key else "missing",
            "region": self.settings.region or "missing",
            "language": self.settings.language,
            "voice": self.settings.voice_name,
        }
