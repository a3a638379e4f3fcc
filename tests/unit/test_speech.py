"""Tests for the speech service."""

import httpx
import pytest

from voxrelay.config import SpeechSettings
from voxrelay.speech.service import SpeechConfigurationError, SpeechError, SpeechService


def service_for(settings: SpeechSettings, handler) -> SpeechService:
    return SpeechService(settings, transport=httpx.MockTransport(handler))


class TestTranscribe:
    """Tests for speech recognition."""

    @pytest.mark.asyncio
    async def test_success(self, speech_settings: SpeechSettings) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"RecognitionStatus": "Success", "DisplayText": "Start the meeting."}
            )

        service = service_for(speech_settings, handler)

        assert await service.transcribe(b"RIFF....WAVE") == "Start the meeting."
        request = seen[0]
        assert request.url.host == "westeurope.stt.speech.microsoft.com"
        assert request.url.params["language"] == "en-US"
        assert request.headers["Ocp-Apim-Subscription-Key"] == "speech-key"
        assert request.content == b"RIFF....WAVE"
        await service.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["NoMatch", "InitialSilenceTimeout"])
    async def test_no_speech(self, speech_settings: SpeechSettings, status: str) -> None:
        service = service_for(
            speech_settings, lambda request: httpx.Response(200, json={"RecognitionStatus": status})
        )
        assert await service.transcribe(b"audio") == ""
        await service.close()

    @pytest.mark.asyncio
    async def test_recognition_error(self, speech_settings: SpeechSettings) -> None:
        service = service_for(
            speech_settings, lambda request: httpx.Response(200, json={"RecognitionStatus": "Error"})
        )
        with pytest.raises(SpeechError, match="Error"):
            await service.transcribe(b"audio")
        await service.close()

    @pytest.mark.asyncio
    async def test_http_error(self, speech_settings: SpeechSettings) -> None:
        service = service_for(speech_settings, lambda request: httpx.Response(401))
        with pytest.raises(SpeechError, match="recognition failed"):
            await service.transcribe(b"audio")
        await service.close()

    @pytest.mark.asyncio
    async def test_html_body(self, speech_settings: SpeechSettings) -> None:
        service = service_for(
            speech_settings, lambda request: httpx.Response(200, text="<html>gateway</html>")
        )
        with pytest.raises(SpeechError, match="unreadable response"):
            await service.transcribe(b"audio")
        await service.close()

    @pytest.mark.asyncio
    async def test_empty_audio(self, speech_settings: SpeechSettings) -> None:
        with pytest.raises(ValueError):
            await SpeechService(speech_settings).transcribe(b"")

    @pytest.mark.asyncio
    async def test_missing_configuration(self) -> None:
        service = SpeechService(SpeechSettings())
        assert service.is_configured is False
        with pytest.raises(SpeechConfigurationError):
            await service.transcribe(b"audio")


class TestSynthesize:
    """Tests for speech synthesis."""

    @pytest.mark.asyncio
    async def test_success(self, speech_settings: SpeechSettings) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=b"ID3-mp3-bytes")

        service = service_for(speech_settings, handler)

        audio = await service.synthesize("Tom & Jerry <3")

        assert audio == b"ID3-mp3-bytes"
        request = seen[0]
        assert request.url.host == "westeurope.tts.speech.microsoft.com"
        assert request.headers["X-Microsoft-OutputFormat"] == SpeechService.OUTPUT_FORMAT
        assert request.headers["Content-Type"] == "application/ssml+xml"
        assert b"Tom &amp; Jerry &lt;3" in request.content
        assert b"en-US-JennyNeural" in request.content
        await service.close()

    @pytest.mark.asyncio
    async def test_voice_override(self, speech_settings: SpeechSettings) -> None:
        seen: list[bytes] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.content)
            return httpx.Response(200, content=b"mp3")

        service = service_for(speech_settings, handler)
        await service.synthesize("Hello", voice_name="en-GB-RyanNeural")

        assert b'name="en-GB-RyanNeural"' in seen[0]
        await service.close()

    @pytest.mark.asyncio
    async def test_http_error(self, speech_settings: SpeechSettings) -> None:
        service = service_for(speech_settings, lambda request: httpx.Response(500))
        with pytest.raises(SpeechError, match="synthesis failed"):
            await service.synthesize("Hello")
        await service.close()

    @pytest.mark.asyncio
    async def test_empty_text(self, speech_settings: SpeechSettings) -> None:
        with pytest.raises(ValueError):
            await SpeechService(speech_settings).synthesize("  ")

    @pytest.mark.asyncio
    async def test_save_audio(self, speech_settings: SpeechSettings, tmp_path) -> None:
        target = await SpeechService(speech_settings).save_audio(b"mp3", tmp_path / "reply.mp3")
        assert target.read_bytes() == b"mp3"


def test_health_status(speech_settings: SpeechSettings) -> None:
    assert SpeechService(speech_settings).get_health_status() == {
        "key": "configured",
        "region": "westeurope",
        "language": "en-US",
        "voice": "en-US-JennyNeural",
    }
