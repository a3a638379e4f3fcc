"""
Credential Strategies

The authentication mechanisms tried by the resolver, in priority order, and
the factory that builds the underlying Azure SDK objects.

Each strategy declares whether its prerequisites are present and, if so, how
to build a credential. Strategies never run the liveness test themselves; the
resolver does that uniformly for all of them.
"""

from __future__ import annotations

import base64
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from azure.core.credentials import AccessToken
from azure.core.credentials_async import AsyncTokenCredential
from azure.core.exceptions import ResourceNotFoundError
from azure.identity.aio import (
    CertificateCredential,
    ClientSecretCredential,
    DefaultAzureCredential,
    ManagedIdentityCredential,
)
from azure.keyvault.certificates.aio import CertificateClient
from azure.keyvault.secrets.aio import SecretClient

from voxrelay.config import DEFAULT_GRAPH_SCOPE, CredentialSettings
from voxrelay.credentials.errors import (
    CertificateCredentialError,
    CertificateNotFoundError,
    CredentialError,
)
from voxrelay.credentials.models import CertificateFormat, CertificateMaterial, StrategyName

logger = structlog.get_logger(__name__)

# Scope requested by the liveness test
LIVENESS_SCOPE = DEFAULT_GRAPH_SCOPE


class CredentialFactory:
    """
    Builds Azure identity and Key Vault objects.

    Kept separate from the strategies so tests can substitute every SDK
    constructor in one place.
    """

    def managed_identity(self, client_id: str | None = None) -> AsyncTokenCredential:
        return ManagedIdentityCredential(client_id=client_id)

    def client_certificate(
        self,
        tenant_id: str,
        client_id: str,
        certificate: str | bytes,
        password: str | None = None,
    ) -> AsyncTokenCredential:
        """
        Build a certificate credential.

        ``certificate`` is raw bytes, a path to a certificate file, or the
        certificate text itself.
        """
        kwargs: dict[str, Any] = {}
        if password:
            kwargs["password"] = password

        if isinstance(certificate, bytes):
            return CertificateCredential(
                tenant_id, client_id, certificate_data=certificate, **kwargs
            )
        if os.path.isfile(certificate):
            return CertificateCredential(
                tenant_id, client_id, certificate_path=certificate, **kwargs
            )
        return CertificateCredential(
            tenant_id, client_id, certificate_data=certificate.encode("ascii"), **kwargs
        )

    def client_secret(
        self, tenant_id: str, client_id: str, client_secret: str
    ) -> AsyncTokenCredential:
        return ClientSecretCredential(tenant_id, client_id, client_secret)

    def default(self) -> AsyncTokenCredential:
        return DefaultAzureCredential()

    def secret_client(self, vault_uri: str, credential: AsyncTokenCredential) -> SecretClient:
        return SecretClient(vault_url=vault_uri, credential=credential)

    def certificate_client(
        self, vault_uri: str, credential: AsyncTokenCredential
    ) -> CertificateClient:
        return CertificateClient(vault_url=vault_uri, credential=credential)


async def check_liveness(credential: AsyncTokenCredential) -> AccessToken:
    """Request a real token to prove the credential is usable, not just well-formed."""
    token = await credential.get_token(LIVENESS_SCOPE)
    if not token or not token.token:
        raise CredentialError("No token received from credential")
    logger.debug("Credential test successful")
    return token


async def close_credential(credential: Any) -> None:
    """Close an SDK object if it supports it; failures are only logged."""
    close = getattr(credential, "close", None)
    if close is None:
        return
    try:
        await close()
    except Exception as e:
        logger.debug("Failed to close credential object", error=str(e))


@contextmanager
def temporary_certificate_file(raw: bytes) -> Iterator[str]:
    """
    Write certificate bytes to a uniquely named, owner-only ``.pfx`` file.

    The file is removed when the block exits, whatever the outcome.
    """
    fd, path = tempfile.mkstemp(prefix="cert-", suffix=".pfx")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(raw)
        yield path
    finally:
        try:
            os.unlink(path)
            logger.debug("Temporary certificate file cleaned up", path=path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(
                "Failed to clean up temporary certificate file", path=path, error=str(e)
            )


async def fetch_certificate_material(
    factory: CredentialFactory,
    vault_uri: str,
    certificate_name: str,
    password: str | None = None,
) -> CertificateMaterial:
    """
    Read a certificate with its private key from Key Vault.

    Key Vault exposes the PKCS#12 bundle as the secret sharing the
    certificate's name. A temporary developer credential is used for the read
    because the app credential does not exist yet.
    """
    bootstrap = factory.default()
    try:
        async with factory.secret_client(vault_uri, bootstrap) as client:
            try:
                secret = await client.get_secret(certificate_name)
            except ResourceNotFoundError as e:
                raise CertificateNotFoundError(certificate_name) from e
    finally:
        await close_credential(bootstrap)

    if not secret.value:
        raise CredentialError(f"Certificate secret '{certificate_name}' has no value")

    logger.info(
        "Certificate retrieved from Key Vault",
        certificate_name=certificate_name,
        key_vault_uri=vault_uri,
    )
    return CertificateMaterial(
        name=certificate_name,
        payload=secret.value,
        password=password,
        format=CertificateFormat.PKCS12,
    )


def create_certificate_credential(
    factory: CredentialFactory,
    tenant_id: str,
    client_id: str,
    material: CertificateMaterial,
) -> AsyncTokenCredential:
    """
    Hand certificate material to the credential constructor.

    The constructor is picky about formats, so try, in order: the base64
    text, the decoded bytes, then a temporary file path. The first
    constructor call that does not raise wins.

    Raises:
        CertificateCredentialError: All three approaches raised
    """
    errors: list[tuple[str, str]] = []

    def from_base64_string() -> AsyncTokenCredential:
        return factory.client_certificate(
            tenant_id, client_id, material.payload, password=material.password
        )

    def from_bytes() -> AsyncTokenCredential:
        raw = base64.b64decode(material.payload)
        return factory.client_certificate(tenant_id, client_id, raw, password=material.password)

    def from_temp_file() -> AsyncTokenCredential:
        raw = base64.b64decode(material.payload)
        with temporary_certificate_file(raw) as path:
            return factory.client_certificate(
                tenant_id, client_id, path, password=material.password
            )

    approaches: list[tuple[str, Callable[[], AsyncTokenCredential]]] = [
        ("base64_string", from_base64_string),
        ("bytes", from_bytes),
        ("temp_file", from_temp_file),
    ]

    for label, build in approaches:
        logger.info("Attempting certificate credential", approach=label)
        try:
            return build()
        except Exception as e:
            errors.append((label, str(e)))
            logger.debug("Certificate credential approach failed", approach=label, error=str(e))

    raise CertificateCredentialError(errors)


class CredentialStrategy(ABC):
    """One entry of the fallback chain."""

    name: StrategyName

    @abstractmethod
    def is_applicable(self, settings: CredentialSettings) -> bool:
        """Whether the prerequisites for this strategy are present."""
        ...

    @abstractmethod
    async def build(
        self, settings: CredentialSettings, factory: CredentialFactory
    ) -> AsyncTokenCredential:
        """Construct the credential. Raising means the attempt failed."""
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name.value!r})>"


class ManagedIdentityStrategy(CredentialStrategy):
    """Platform-assigned identity; only when running inside Azure."""

    name = StrategyName.MANAGED_IDENTITY

    def is_applicable(self, settings: CredentialSettings) -> bool:
        return settings.platform_identity_available

    async def build(
        self, settings: CredentialSettings, factory: CredentialFactory
    ) -> AsyncTokenCredential:
        return factory.managed_identity(settings.managed_identity_client_id)


class ClientCertificateStrategy(CredentialStrategy):
    """App registration authenticated with a certificate kept in Key Vault."""

    name = StrategyName.CLIENT_CERTIFICATE

    def is_applicable(self, settings: CredentialSettings) -> bool:
        return settings.certificate_configured

    async def build(
        self, settings: CredentialSettings, factory: CredentialFactory
    ) -> AsyncTokenCredential:
        vault_uri, certificate_name = settings.key_vault_uri, settings.certificate_name
        tenant_id, client_id = settings.tenant_id, settings.client_id
        if not vault_uri or not certificate_name or not tenant_id or not client_id:
            raise CredentialError("Key Vault certificate configuration is incomplete")

        material = await fetch_certificate_material(
            factory, vault_uri, certificate_name, settings.certificate_password
        )
        return create_certificate_credential(factory, tenant_id, client_id, material)


class ClientSecretStrategy(CredentialStrategy):
    """App registration authenticated with a client secret."""

    name = StrategyName.CLIENT_SECRET

    def is_applicable(self, settings: CredentialSettings) -> bool:
        return settings.client_secret_configured

    async def build(
        self, settings: CredentialSettings, factory: CredentialFactory
    ) -> AsyncTokenCredential:
        tenant_id, client_id = settings.tenant_id, settings.client_id
        client_secret = settings.client_secret
        if not tenant_id or not client_id or not client_secret:
            raise CredentialError("Client secret configuration is incomplete")
        return factory.client_secret(tenant_id, client_id, client_secret)


class DefaultCredentialStrategy(CredentialStrategy):
    """Ambient developer credential (CLI login, IDE session, environment)."""

    name = StrategyName.DEFAULT

    def is_applicable(self, settings: CredentialSettings) -> bool:
        return True

    async def build(
        self, settings: CredentialSettings, factory: CredentialFactory
    ) -> AsyncTokenCredential:
        return factory.default()


DEFAULT_STRATEGIES: tuple[CredentialStrategy, ...] = (
    ManagedIdentityStrategy(),
    ClientCertificateStrategy(),
    ClientSecretStrategy(),
    DefaultCredentialStrategy(),
)
