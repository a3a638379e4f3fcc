"""
End-to-end credential resolution driven by environment variables.

Only the Azure SDK constructors are faked; settings are read from the
environment exactly as in production.
"""

import pytest

from tests.fakes import (
    CERTIFICATE_NAME,
    CERTIFICATE_PAYLOAD,
    CLIENT_ID,
    TENANT_ID,
    VAULT_URI,
    FakeCredentialFactory,
)
from voxrelay.config import CredentialSettings
from voxrelay.credentials.errors import NotConfiguredError
from voxrelay.credentials.models import ResolutionState, StrategyName
from voxrelay.credentials.resolver import CredentialResolver


class TestCredentialScenarios:
    """Tests for complete resolution passes."""

    @pytest.mark.asyncio
    async def test_client_secret_only(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Tenant, client and secret only: the secret wins and there is no Key Vault."""
        monkeypatch.setenv("MICROSOFT_APP_TENANT_ID", TENANT_ID)
        monkeypatch.setenv("MICROSOFT_APP_ID", CLIENT_ID)
        monkeypatch.setenv("MICROSOFT_APP_PASSWORD", "app-secret")
        factory = FakeCredentialFactory()

        resolver = CredentialResolver(CredentialSettings(), factory=factory)
        resolver.start()
        await resolver.wait_until_ready()

        assert resolver.strategy == StrategyName.CLIENT_SECRET
        assert resolver.get_health_status().credential == "initialized"
        with pytest.raises(NotConfiguredError):
            await resolver.get_secret("inference-api-key")
        await resolver.aclose()

    @pytest.mark.asyncio
    async def test_certificate_accepted_as_string(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The first certificate approach succeeds and no temporary file is written."""
        monkeypatch.setenv("AZURE_KEY_VAULT_URI", VAULT_URI)
        monkeypatch.setenv("AZURE_KEY_VAULT_CERTIFICATE_NAME", CERTIFICATE_NAME)
        monkeypatch.setenv("MICROSOFT_APP_TENANT_ID", TENANT_ID)
        monkeypatch.setenv("MICROSOFT_APP_ID", CLIENT_ID)

        def no_temp_files(*args, **kwargs):
            raise AssertionError("temporary file must not be created")

        monkeypatch.setattr("voxrelay.credentials.strategies.tempfile.mkstemp", no_temp_files)
        factory = FakeCredentialFactory(secrets={CERTIFICATE_NAME: CERTIFICATE_PAYLOAD})

        resolver = CredentialResolver(CredentialSettings(), factory=factory)
        await resolver.wait_until_ready()

        assert resolver.strategy == StrategyName.CLIENT_CERTIFICATE
        assert resolver.attempts == ()
        assert [call["certificate"] for call in factory.certificate_calls] == [
            CERTIFICATE_PAYLOAD
        ]
        health = resolver.get_health_status()
        assert health.secret_client == "initialized"
        assert health.certificate_client == "initialized"
        await resolver.aclose()

    @pytest.mark.asyncio
    async def test_ambient_session_only(self) -> None:
        """Nothing configured: strategies 1-3 are skipped, not failed."""
        factory = FakeCredentialFactory()

        resolver = CredentialResolver(CredentialSettings(), factory=factory)
        await resolver.wait_until_ready()

        assert resolver.state == ResolutionState.SUCCEEDED
        assert resolver.strategy == StrategyName.DEFAULT
        assert resolver.attempts == ()
        assert factory.calls == {"default": 1}
        assert resolver.get_health_status().key_vault_uri == "not configured"
        await resolver.aclose()

    @pytest.mark.asyncio
    async def test_environment_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("IDENTITY_ENDPOINT", "http://localhost:42356/msi/token")
        monkeypatch.setenv("GRAPH_SCOPES", "User.Read,OnlineMeetings.ReadWrite")
        monkeypatch.setenv("VOXRELAY_CREDENTIAL_INIT_TIMEOUT", "5")

        settings = CredentialSettings()

        assert settings.platform_identity_available is True
        assert settings.graph_scope_list == ["User.Read", "OnlineMeetings.ReadWrite"]
        assert settings.init_timeout_seconds == 5.0
        assert settings.certificate_configured is False
        assert settings.client_secret_configured is False
