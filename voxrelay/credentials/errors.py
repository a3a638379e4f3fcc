"""
Credential Errors

Exception hierarchy for credential resolution and the secrets facade.
Only the terminal and accessor-level errors ever reach callers; per-strategy
failures are aggregated inside the resolver.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from voxrelay.credentials.models import CredentialAttemptRecord


class CredentialError(Exception):
    """Base class for all credential errors."""

    pass


class StrategyAttemptFailedError(CredentialError):
    """A single strategy could not produce a working credential."""

    def __init__(self, strategy: str, message: str) -> None:
        self.strategy = strategy
        super().__init__(f"{strategy}: {message}")


class CertificateCredentialError(CredentialError):
    """Every way of handing certificate material to the credential constructor failed."""

    def __init__(self, errors: list[tuple[str, str]]) -> None:
        self.errors = errors
        details = "; ".join(f"{approach}: {message}" for approach, message in errors)
        super().__init__(f"All certificate credential approaches failed: {details}")


class CredentialInitializationError(CredentialError):
    """A resolution pass ended without a usable credential."""

    pass


class AllStrategiesExhaustedError(CredentialInitializationError):
    """Every applicable strategy was attempted and failed."""

    def __init__(self, attempts: list[CredentialAttemptRecord]) -> None:
        self.attempts = list(attempts)
        if attempts:
            details = "; ".join(f"{a.strategy.value}: {a.error_message}" for a in attempts)
        else:
            details = "no strategy was attempted"
        super().__init__(f"All authentication methods failed. Attempts: {details}")


class InitializationTimeoutError(CredentialError):
    """Waiting for credential resolution took longer than allowed."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Credential initialization timeout after {timeout_seconds:g}s")


class NotConfiguredError(CredentialError):
    """A sub-client was never built because its configuration was absent."""

    def __init__(self, component: str, message: str | None = None) -> None:
        self.component = component
        super().__init__(message or f"{component} is not configured")


class GraphNotConfiguredError(NotConfiguredError):
    """The graph client could not be set up for the live credential."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__("graph_client", message or "Microsoft Graph client not initialized")


class NotFoundError(CredentialError):
    """The requested item does not exist in the backing store."""

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} '{name}' not found")


class SecretNotFoundError(NotFoundError):
    def __init__(self, name: str) -> None:
        super().__init__("Secret", name)


class CertificateNotFoundError(NotFoundError):
    def __init__(self, name: str) -> None:
        super().__init__("Certificate", name)
