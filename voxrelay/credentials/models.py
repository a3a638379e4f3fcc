"""
Credential Models

Data carried through credential resolution: the attempt log, certificate
material and the health snapshot.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class StrategyName(str, Enum):
    """Authentication strategies, in the order they are tried."""

    MANAGED_IDENTITY = "ManagedIdentity"
    CLIENT_CERTIFICATE = "ClientCertificate"
    CLIENT_SECRET = "ClientSecret"
    DEFAULT = "DefaultAzureCredential"


class ResolutionState(str, Enum):
    """Lifecycle of a resolution pass."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class CertificateFormat(str, Enum):
    PKCS12 = "pkcs12"


class CredentialAttemptRecord(BaseModel):
    """One failed strategy attempt."""

    model_config = ConfigDict(frozen=True)

    strategy: StrategyName
    error_message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CertificateMaterial(BaseModel):
    """Certificate with private key as stored in Key Vault (base64 PKCS#12)."""

    model_config = ConfigDict(frozen=True)

    name: str
    payload: str = Field(..., repr=False, description="Base64-encoded PKCS#12 bundle")
    password: str | None = Field(default=None, repr=False)
    format: CertificateFormat = CertificateFormat.PKCS12
    thumbprint: str | None = None


class HealthStatus(BaseModel):
    """Point-in-time view of the resolver, safe to take at any moment."""

    model_config = ConfigDict(populate_by_name=True)

    credential: str
    secret_client: str = Field(alias="secretClient")
    certificate_client: str = Field(alias="certificateClient")
    graph_client: str = Field(alias="graphClient")
    key_vault_uri: str = Field(alias="keyVaultUri")
    state: ResolutionState
    strategy: StrategyName | None = None
