"""
Inference Client

Async client for an OpenAI-compatible chat-completions endpoint (Azure AI
Foundry deployments). Turns a prompt plus recent conversation into a reply and
degrades to a friendly fallback message when the endpoint misbehaves.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from voxrelay import __version__
from voxrelay.config import FoundrySettings

if TYPE_CHECKING:
    from voxrelay.credentials.resolver import CredentialResolver

logger = structlog.get_logger(__name__)

COGNITIVE_SERVICES_SCOPE = "https://cognitiveservices.azure.com/.default"

SYSTEM_PROMPT = """You are an intelligent AI assistant integrated into Microsoft Teams. You help users with various tasks and questions during meetings and conversations.

Guidelines:
- Provide helpful, accurate, and concise responses
- Be professional and friendly in tone
- When discussing complex topics, break them down into clear points
- If you're unsure about something, acknowledge it honestly
- Keep responses focused and relevant to the user's question
- For technical topics, provide practical examples when possible
- Remember that you're in a Teams environment, so responses may be read aloud or viewed by multiple participants

Current context: You are responding to a message in Microsoft Teams and may be participating in a meeting or chat conversation."""


class InferenceError(Exception):
    """Base class for inference errors."""

    pass


class InferenceConfigurationError(InferenceError):
    """The endpoint or its authentication is not configured."""

    pass


class InferenceResponseError(InferenceError):
    """The endpoint answered with something we cannot use."""

    pass


@dataclass
class InferenceMessage:
    """A message in a conversation."""

    role: str  # "user", "assistant", "system"
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class CompletionOptions:
    """Sampling options for a completion request."""

    max_tokens: int = 1000
    temperature: float = 0.7
    top_p: float = 0.9
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0
    extra: dict[str, Any] = field(default_factory=dict)


class FoundryClient:
    """
    Chat-completions client for the inference endpoint.

    Authenticates with the configured API key, or with an Entra ID token from
    the credential resolver when no key is set.
    """

    # Number of previous conversation messages sent with each prompt
    CONTEXT_WINDOW = 8

    def __init__(
        self,
        settings: FoundrySettings,
        resolver: CredentialResolver | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            settings: Endpoint configuration
            resolver: Credential resolver used when no API key is configured
            transport: Optional httpx transport (tests)
        """
        self.settings = settings
        self._resolver = resolver
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.settings.timeout_seconds,
                transport=self._transport,
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": f"voxrelay/{__version__}",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _auth_headers(self) -> dict[str, str]:
        if self.settings.api_key:
            return {"Authorization": f"Bearer {self.settings.api_key}"}
        if self._resolver is not None:
            token = await self._resolver.get_access_token([COGNITIVE_SERVICES_SCOPE])
            return {"Authorization": f"Bearer {token}"}
        raise InferenceConfigurationError(
            "AI_FOUNDRY_API_KEY is not set and no credential resolver is available"
        )

    def prepare_messages(
        self,
        prompt: str,
        context: list[InferenceMessage] | None = None,
    ) -> list[InferenceMessage]:
        """Build the message list: system prompt, recent context, then the prompt."""
        messages = [InferenceMessage(role="system", content=SYSTEM_PROMPT)]
        messages.extend((context or [])[-self.CONTEXT_WINDOW :])

        # Avoid sending the prompt twice when the caller already appended it
        if messages[-1].content != prompt:
            messages.append(InferenceMessage(role="user", content=prompt))
        return messages

    def extract_response_content(self, data: dict[str, Any]) -> str:
        """Pull the reply text out of the various response shapes we accept."""
        choices = data.get("choices")
        if choices:
            choice = choices[0]
            message = choice.get("message") or {}
            return message.get("content") or choice.get("text") or ""

        if data.get("content"):
            return data["content"]

        wrapped = data.get("data")
        if isinstance(wrapped, dict) and wrapped.get("content"):
            return wrapped["content"]

        logger.warning("Unexpected response format from inference endpoint", keys=list(data))
        raise InferenceResponseError("Unexpected response format from inference endpoint")

    def fallback_response(self, error: Exception) -> str:
        """User-facing message matching the kind of failure."""
        if isinstance(error, httpx.TimeoutException):
            return "I'm experiencing delays connecting to the AI service. Please try again in a moment."

        if isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
            if status == 401:
                return "I'm having authentication issues with the AI service. Please contact your administrator."
            if status == 429:
                return "The AI service is currently busy. Please wait a moment and try again."
            if status >= 500:
                return "The AI service is temporarily unavailable. Please try again later."

        return "I'm having trouble processing your request right now. Please try rephrasing your question or try again later."

    async def _request_completion(
        self,
        prompt: str,
        context: list[InferenceMessage] | None,
        options: CompletionOptions,
    ) -> str:
        if not self.settings.endpoint:
            raise InferenceConfigurationError("AI_FOUNDRY_ENDPOINT environment variable is required")

        messages = self.prepare_messages(prompt, context)
        payload: dict[str, Any] = {
            "model": self.settings.model_name,
            "messages": [m.to_dict() for m in messages],
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "top_p": options.top_p,
            "frequency_penalty": options.frequency_penalty,
            "presence_penalty": options.presence_penalty,
            "stream": False,
            **options.extra,
        }
        if self.settings.deployment_name:
            payload["deployment_name"] = self.settings.deployment_name

        client = await self._get_client()
        headers = await self._auth_headers()

        logger.info(
            "Sending request to inference endpoint",
            prompt_length=len(prompt),
            context_length=len(context or []),
            model=self.settings.model_name,
        )

        start = time.perf_counter()
        response = await client.post(self.settings.endpoint, json=payload, headers=headers)
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError as e:
            raise InferenceResponseError("Inference endpoint returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise InferenceResponseError("Unexpected response format from inference endpoint")

        logger.info(
            "Inference response received",
            duration_ms=round((time.perf_counter() - start) * 1000, 1),
            status=response.status_code,
            usage=data.get("usage"),
        )
        return self.extract_response_content(data)

    async def complete(
        self,
        prompt: str,
        context: list[InferenceMessage] | None = None,
        options: CompletionOptions | None = None,
    ) -> str:
        """
        Generate a reply to the prompt.

        HTTP and response-format failures are turned into a fallback message.
        Configuration and credential errors propagate.

        Raises:
            ValueError: The prompt is empty
        """
        if not prompt or not prompt.strip():
            raise ValueError("Prompt must be a non-empty string")

        try:
            return await self._request_completion(prompt, context, options or CompletionOptions())
        except (httpx.HTTPError, InferenceResponseError) as e:
            logger.error("Error querying inference endpoint", error=str(e))
            return self.fallback_response(e)

    async def complete_with_retry(
        self,
        prompt: str,
        context: list[InferenceMessage] | None = None,
        options: CompletionOptions | None = None,
        max_retries: int = 3,
    ) -> str:
        """
        Like complete(), retrying with exponential backoff (2s, 4s, 8s).

        Authentication and bad-request errors are not retried.
        """
        if not prompt or not prompt.strip():
            raise ValueError("Prompt must be a non-empty string")

        last_error: Exception = InferenceResponseError("Empty response from inference endpoint")
        for attempt in range(1, max_retries + 1):
            logger.debug("Inference query attempt", attempt=attempt, max_retries=max_retries)
            try:
                reply = await self._request_completion(
                    prompt, context, options or CompletionOptions()
                )
                if reply:
                    return reply
                last_error = InferenceResponseError("Empty response from inference endpoint")
            except (httpx.HTTPError, InferenceResponseError) as e:
                last_error = e
                logger.warning("Inference query attempt failed", attempt=attempt, error=str(e))
                if isinstance(e, httpx.HTTPStatusError) and e.response.status_code in (400, 401):
                    break

            if attempt < max_retries:
                await asyncio.sleep(2**attempt)

        logger.error(
            "All inference query attempts failed",
            max_retries=max_retries,
            last_error=str(last_error),
        )
        return self.fallback_response(last_error)

    async def test_connection(self) -> dict[str, Any]:
        """Send a short prompt and report whether a reply came back."""
        logger.info("Testing inference endpoint connection")
        try:
            reply = await self._request_completion(
                "Hello, this is a connection test.", None, CompletionOptions(max_tokens=20)
            )
        except Exception as e:
            logger.error("Inference connection test failed", error=str(e))
            return {"success": False, "error": str(e)}

        if not reply:
            return {"success": False, "error": "Empty response"}
        return {"success": True, "response": reply}

    def get_health_status(self) -> dict[str, str]:
        return {
            "endpoint": "configured" if self.settings.endpoint else "missing",
            "api_key": "configured" if self.settings.api_key else "missing",
            "deployment_name": self.settings.deployment_name or "not specified",
            "model_name": self.settings.model_name,
        }
