"""
voxrelay Credentials

Prioritized Azure credential chain with an asynchronous readiness gate and a
Key Vault / token / Graph facade on top of the live credential.
"""

from voxrelay.credentials.errors import (
    AllStrategiesExhaustedError,
    CertificateNotFoundError,
    CredentialError,
    CredentialInitializationError,
    GraphNotConfiguredError,
    InitializationTimeoutError,
    NotConfiguredError,
    NotFoundError,
    SecretNotFoundError,
)
from voxrelay.credentials.graph import GraphClient
from voxrelay.credentials.models import (
    CertificateMaterial,
    CredentialAttemptRecord,
    HealthStatus,
    ResolutionState,
    StrategyName,
)
from voxrelay.credentials.readiness import ReadinessGate
from voxrelay.credentials.resolver import CredentialResolver
from voxrelay.credentials.strategies import CredentialFactory

__all__ = [
    # Resolver
    "CredentialResolver",
    "CredentialFactory",
    "ReadinessGate",
    "GraphClient",
    # Models
    "CertificateMaterial",
    "CredentialAttemptRecord",
    "HealthStatus",
    "ResolutionState",
    "StrategyName",
    # Errors
    "AllStrategiesExhaustedError",
    "CertificateNotFoundError",
    "CredentialError",
    "CredentialInitializationError",
    "GraphNotConfiguredError",
    "InitializationTimeoutError",
    "NotConfiguredError",
    "NotFoundError",
    "SecretNotFoundError",
]
