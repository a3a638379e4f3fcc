"""
Credential Resolver

Produces exactly one working Azure credential by walking a fixed-priority
chain of authentication strategies, and exposes Key Vault, token and Graph
access on top of it.

The resolver is built once per process and handed to every collaborator that
needs it. Construction only wires configuration; ``start()`` schedules the
resolution pass on the running event loop. Resolution failures never escape
the background task: they become the terminal state of the readiness gate and
are raised to whoever calls an accessor.

Usage:
    resolver = CredentialResolver(CredentialSettings())
    resolver.start()

    token = await resolver.get_access_token()
    api_key = await resolver.get_secret("inference-api-key")
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog
from azure.core.credentials_async import AsyncTokenCredential
from azure.core.exceptions import ResourceNotFoundError
from azure.keyvault.certificates.aio import CertificateClient
from azure.keyvault.secrets.aio import SecretClient

from voxrelay.config import DEFAULT_GRAPH_SCOPE, CredentialSettings
from voxrelay.credentials.errors import (
    AllStrategiesExhaustedError,
    CertificateNotFoundError,
    CredentialError,
    CredentialInitializationError,
    GraphNotConfiguredError,
    NotConfiguredError,
    SecretNotFoundError,
    StrategyAttemptFailedError,
)
from voxrelay.credentials.graph import GraphClient
from voxrelay.credentials.models import (
    CertificateFormat,
    CertificateMaterial,
    CredentialAttemptRecord,
    HealthStatus,
    ResolutionState,
    StrategyName,
)
from voxrelay.credentials.readiness import ReadinessGate
from voxrelay.credentials.strategies import (
    DEFAULT_STRATEGIES,
    CredentialFactory,
    CredentialStrategy,
    check_liveness,
    close_credential,
)

logger = structlog.get_logger(__name__)

TEAMS_MEETING_SCOPE = "https://graph.microsoft.com/OnlineMeetings.ReadWrite"
CALLING_SCOPE = "https://graph.microsoft.com/Calls.AccessMedia.All"

_INITIALIZED = "initialized"
_NOT_INITIALIZED = "not initialized"


@dataclass(eq=False)
class CredentialBundle:
    """
    The live credential and the sub-clients built from it.

    Swapped as a whole, so a caller that captured a bundle always sees a
    consistent credential/sub-client pair. Only ``graph_client`` is filled in
    after the swap, lazily and at most once.

    ``leases`` counts the calls currently running against the bundle. A
    retired bundle is closed when that count drops to zero.
    """

    strategy: StrategyName
    credential: AsyncTokenCredential
    secret_client: SecretClient | None = None
    certificate_client: CertificateClient | None = None
    graph_client: GraphClient | None = None
    leases: int = field(default=0, repr=False)

    async def close(self) -> None:
        for client in (self.graph_client, self.secret_client, self.certificate_client):
            if client is not None:
                await close_credential(client)
        await close_credential(self.credential)


class CredentialResolver:
    """
    Prioritized, self-healing credential chain with a readiness contract.

    Strategy order: managed identity, Key Vault certificate, client secret,
    DefaultAzureCredential. A strategy whose configuration is absent is
    skipped without a trace in the attempt log; one that is attempted and
    fails is logged and the chain moves on.
    """

    def __init__(
        self,
        settings: CredentialSettings,
        factory: CredentialFactory | None = None,
        strategies: Sequence[CredentialStrategy] = DEFAULT_STRATEGIES,
        graph_transport: Any = None,
    ) -> None:
        """
        Wire configuration. Performs no I/O.

        Args:
            settings: Credential configuration
            factory: Builder for Azure SDK objects (replaced in tests)
            strategies: Strategies in priority order
            graph_transport: Optional httpx transport for the graph client
        """
        self.settings = settings
        self._factory = factory or CredentialFactory()
        self._strategies = tuple(strategies)
        self._graph_transport = graph_transport
        self._gate = ReadinessGate(timeout_seconds=settings.init_timeout_seconds)
        self._bundle: CredentialBundle | None = None
        self._retired: list[CredentialBundle] = []
        self._attempts: tuple[CredentialAttemptRecord, ...] = ()
        self._task: asyncio.Task[ResolutionState] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> ResolutionState:
        return self._gate.state

    @property
    def strategy(self) -> StrategyName | None:
        """Strategy that produced the live credential, if any."""
        if self._gate.state is not ResolutionState.SUCCEEDED or self._bundle is None:
            return None
        return self._bundle.strategy

    @property
    def attempts(self) -> tuple[CredentialAttemptRecord, ...]:
        """Failed attempts of the most recent resolution pass."""
        return self._attempts

    def start(self) -> asyncio.Task[ResolutionState]:
        """
        Schedule the resolution pass on the running loop.

        Idempotent: later calls return the task of the current pass.
        """
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(
                self._run_resolution(), name="credential-resolution"
            )
        return self._task

    async def wait_until_ready(self, timeout: float | None = None) -> None:
        """Block until resolution succeeded; raises the terminal error otherwise."""
        if self._task is None:
            self.start()
        await self._gate.ensure_ready(timeout)

    async def refresh_credentials(self) -> None:
        """
        Re-run the whole chain and replace the live credential.

        Calls that already captured the previous credential finish against it;
        the previous credential is closed once the last of them returns.
        If a pass is already running, this joins it instead of starting another.

        Raises:
            CredentialInitializationError: The new pass failed
        """
        if self._task is not None and not self._task.done():
            logger.info("Credential resolution already in progress, joining it")
        else:
            logger.info("Refreshing credentials")
            self._gate.reset()
            self._task = asyncio.get_running_loop().create_task(
                self._run_resolution(), name="credential-refresh"
            )

        await asyncio.shield(self._task)

        if self._gate.error is not None:
            logger.error("Failed to refresh credentials", error=str(self._gate.error))
            raise self._gate.error
        logger.info("Credentials refreshed successfully", strategy=self.strategy)

    async def aclose(self) -> None:
        """Stop any running pass and close every credential and sub-client."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

        bundles = self._retired + ([self._bundle] if self._bundle is not None else [])
        for bundle in bundles:
            await bundle.close()
        self._retired.clear()
        self._bundle = None

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def _run_resolution(self) -> ResolutionState:
        """Run one pass and record its outcome in the gate. Never raises."""
        try:
            bundle = await self._resolve()
        except CredentialInitializationError as e:
            previous, self._bundle = self._bundle, None
            self._gate.fail(e)
        except Exception as e:
            logger.exception("Critical error in credential resolution")
            error = CredentialInitializationError(f"Credential resolution crashed: {e}")
            error.__cause__ = e
            previous, self._bundle = self._bundle, None
            self._gate.fail(error)
        else:
            previous, self._bundle = self._bundle, bundle
            self._gate.succeed()
            logger.info("Credential resolver initialized", strategy=bundle.strategy.value)
        await self._retire(previous)
        return self._gate.state

    async def _retire(self, bundle: CredentialBundle | None) -> None:
        """Close a replaced bundle now, or when its last running call ends."""
        if bundle is None:
            return
        if bundle.leases:
            logger.debug(
                "Replaced credential still in use",
                strategy=bundle.strategy.value,
                leases=bundle.leases,
            )
            self._retired.append(bundle)
            return
        await bundle.close()

    async def _resolve(self) -> CredentialBundle:
        attempts: list[CredentialAttemptRecord] = []
        last_failure: StrategyAttemptFailedError | None = None

        for strategy in self._strategies:
            if not strategy.is_applicable(self.settings):
                logger.debug("Skipping credential strategy", strategy=strategy.name.value)
                continue

            credential: AsyncTokenCredential | None = None
            try:
                credential = await strategy.build(self.settings, self._factory)
                await check_liveness(credential)
            except Exception as e:
                attempts.append(
                    CredentialAttemptRecord(strategy=strategy.name, error_message=str(e))
                )
                last_failure = StrategyAttemptFailedError(strategy.name.value, str(e))
                last_failure.__cause__ = e
                logger.warning(
                    "Credential strategy failed, trying fallback options",
                    strategy=strategy.name.value,
                    error=str(e),
                )
                if credential is not None:
                    await close_credential(credential)
                continue

            logger.info("Using credential", strategy=strategy.name.value)
            self._attempts = tuple(attempts)
            return self._build_bundle(strategy.name, credential)

        self._attempts = tuple(attempts)
        logger.error(
            "All credential attempts failed",
            attempts=[{"strategy": a.strategy.value, "error": a.error_message} for a in attempts],
        )
        raise AllStrategiesExhaustedError(attempts) from last_failure

    def _build_bundle(
        self, strategy: StrategyName, credential: AsyncTokenCredential
    ) -> CredentialBundle:
        bundle = CredentialBundle(strategy=strategy, credential=credential)
        vault_uri = self.settings.key_vault_uri

        if not vault_uri:
            logger.warning("Key Vault URI not configured, skipping Key Vault client setup")
            return bundle

        try:
            bundle.secret_client = self._factory.secret_client(vault_uri, credential)
            bundle.certificate_client = self._factory.certificate_client(vault_uri, credential)
            logger.info("Key Vault clients initialized", key_vault_uri=vault_uri)
        except Exception as e:
            bundle.secret_client = None
            bundle.certificate_client = None
            logger.error("Failed to set up Key Vault clients", error=str(e))
        return bundle

    @contextlib.asynccontextmanager
    async def _lease(self) -> AsyncIterator[CredentialBundle]:
        """Wait for the gate, then hold the live bundle for the rest of the call."""
        await self.wait_until_ready()
        bundle = self._bundle
        if bundle is None:
            raise CredentialInitializationError("No credential available after initialization")

        bundle.leases += 1
        try:
            yield bundle
        finally:
            bundle.leases -= 1
            if not bundle.leases and bundle in self._retired:
                self._retired.remove(bundle)
                await bundle.close()
                logger.debug("Replaced credential closed", strategy=bundle.strategy.value)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_credential(self) -> AsyncTokenCredential:
        """
        Return the live credential without waiting.

        The caller does not hold it against a refresh: a refresh closes the
        returned credential unless an accessor call is still using it.
        """
        bundle = self._bundle
        if bundle is None or self._gate.state is not ResolutionState.SUCCEEDED:
            raise CredentialError("Credential not initialized")
        return bundle.credential

    async def get_secret(self, name: str) -> str:
        """
        Read a secret from Key Vault.

        Raises:
            NotConfiguredError: No vault URI was configured
            SecretNotFoundError: The secret does not exist
        """
        async with self._lease() as bundle:
            if bundle.secret_client is None:
                raise NotConfiguredError(
                    "secret_client",
                    "Secret client not initialized. Ensure AZURE_KEY_VAULT_URI is configured.",
                )

            try:
                secret = await bundle.secret_client.get_secret(name)
            except ResourceNotFoundError as e:
                logger.warning("Secret not found", secret_name=name)
                raise SecretNotFoundError(name) from e

        logger.info("Secret retrieved successfully", secret_name=name)
        return secret.value or ""

    async def set_secret(self, name: str, value: str) -> None:
        """Create or update a secret in Key Vault."""
        async with self._lease() as bundle:
            if bundle.secret_client is None:
                raise NotConfiguredError(
                    "secret_client",
                    "Secret client not initialized. Ensure AZURE_KEY_VAULT_URI is configured.",
                )
            await bundle.secret_client.set_secret(name, value)

        logger.info("Secret set successfully", secret_name=name)

    async def get_certificate_info(self, name: str) -> CertificateMaterial:
        """
        Fetch a certificate and its PKCS#12 payload from Key Vault.

        Raises:
            NotConfiguredError: No vault URI was configured
            CertificateNotFoundError: The certificate does not exist
        """
        async with self._lease() as bundle:
            if bundle.certificate_client is None or bundle.secret_client is None:
                raise NotConfiguredError(
                    "certificate_client",
                    "Certificate client not initialized. Ensure AZURE_KEY_VAULT_URI is configured.",
                )

            try:
                certificate = await bundle.certificate_client.get_certificate(name)
                secret = await bundle.secret_client.get_secret(name)
            except ResourceNotFoundError as e:
                logger.warning("Certificate not found", certificate_name=name)
                raise CertificateNotFoundError(name) from e

        thumbprint = getattr(certificate.properties, "x509_thumbprint", None)
        logger.info("Certificate retrieved successfully", certificate_name=name)
        return CertificateMaterial(
            name=name,
            payload=secret.value or "",
            password=self.settings.certificate_password,
            format=CertificateFormat.PKCS12,
            thumbprint=thumbprint.hex() if thumbprint else None,
        )

    async def get_access_token(self, scopes: Sequence[str] | None = None) -> str:
        """
        Get a bearer token for the given scopes.

        A refresh that completes while the token is being fetched does not
        affect this call: it finishes on the credential it started with.

        Args:
            scopes: Token scopes, the Graph default scope when omitted
        """
        scope_list = list(scopes) if scopes else [DEFAULT_GRAPH_SCOPE]
        async with self._lease() as bundle:
            token = await bundle.credential.get_token(*scope_list)

        if not token or not token.token:
            raise CredentialError("No token received from credential")

        logger.debug("Access token retrieved", scopes=scope_list, expires_on=token.expires_on)
        return token.token

    def _graph_client_for(self, bundle: CredentialBundle) -> GraphClient:
        if bundle.graph_client is None:
            scopes = self.settings.graph_scope_list
            if not scopes:
                raise GraphNotConfiguredError(
                    "Microsoft Graph client not initialized: GRAPH_SCOPES has no usable scope"
                )
            bundle.graph_client = GraphClient(
                bundle.credential, scopes, transport=self._graph_transport
            )
            logger.info("Microsoft Graph client initialized", scopes=scopes)
        return bundle.graph_client

    async def get_graph_client(self) -> GraphClient:
        """
        Get the Microsoft Graph client for the live credential.

        Built on first use and reused until the credential is refreshed; a
        refresh closes it.

        Raises:
            GraphNotConfiguredError: No usable graph scopes are configured
        """
        async with self._lease() as bundle:
            return self._graph_client_for(bundle)

    async def get_teams_meeting_token(self) -> str:
        return await self.get_access_token([TEAMS_MEETING_SCOPE])

    async def get_calling_token(self) -> str:
        return await self.get_access_token([CALLING_SCOPE])

    async def create_teams_meeting(self, details: dict[str, Any]) -> dict[str, Any]:
        """Create a Teams online meeting through Graph."""
        async with self._lease() as bundle:
            graph = self._graph_client_for(bundle)
            return await graph.create_online_meeting(details)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def is_credential_available(self) -> bool:
        return self._gate.state is ResolutionState.SUCCEEDED and self._bundle is not None

    def has_initialization_error(self) -> bool:
        return self._gate.error is not None

    def get_initialization_error(self) -> CredentialInitializationError | None:
        return self._gate.error

    def get_health_status(self) -> HealthStatus:
        """
        Synchronous snapshot of the resolver. Never raises, never waits.

        While a pass is pending everything reports "not initialized".
        """
        bundle = self._bundle if self._gate.state is ResolutionState.SUCCEEDED else None

        def status(component: object | None) -> str:
            return _INITIALIZED if component is not None else _NOT_INITIALIZED

        return HealthStatus(
            credential=status(bundle.credential if bundle else None),
            secret_client=status(bundle.secret_client if bundle else None),
            certificate_client=status(bundle.certificate_client if bundle else None),
            graph_client=status(bundle.graph_client if bundle else None),
            key_vault_uri="configured" if self.settings.key_vault_uri else "not configured",
            state=self._gate.state,
            strategy=bundle.strategy if bundle else None,
        )
