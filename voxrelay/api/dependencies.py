"""
Service container shared by the API routes.

Built once in the application lifespan and stored on ``app.state``.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from fastapi import Request

from voxrelay.chat.handler import RelayHandler
from voxrelay.config import CredentialSettings, FoundrySettings, SpeechSettings
from voxrelay.credentials.resolver import CredentialResolver
from voxrelay.inference.client import FoundryClient
from voxrelay.speech.service import SpeechService

logger = structlog.get_logger(__name__)


@dataclass
class RelayServices:
    """The resolver and every client built on top of it."""

    resolver: CredentialResolver
    inference: FoundryClient
    speech: SpeechService
    handler: RelayHandler

    async def aclose(self) -> None:
        await self.inference.close()
        await self.speech.close()
        await self.resolver.aclose()
        logger.info("Relay services closed")


def build_services(
    credential_settings: CredentialSettings | None = None,
    foundry_settings: FoundrySettings | None = None,
    speech_settings: SpeechSettings | None = None,
) -> RelayServices:
    """
    Wire the resolver, clients and handler from environment settings.

    Performs no I/O; call ``resolver.start()`` on a running loop afterwards.
    """
    resolver = CredentialResolver(credential_settings or CredentialSettings())
    inference = FoundryClient(foundry_settings or FoundrySettings(), resolver=resolver)
    speech = SpeechService(speech_settings or SpeechSettings())
    handler = RelayHandler(inference, speech=speech, resolver=resolver)
    return RelayServices(resolver=resolver, inference=inference, speech=speech, handler=handler)


def get_services(request: Request) -> RelayServices:
    """FastAPI dependency returning the services built at startup."""
    return request.app.state.services
