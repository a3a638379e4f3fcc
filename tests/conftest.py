"""
Pytest configuration and shared fixtures.
"""

import pytest

from tests.fakes import CERTIFICATE_NAME, CLIENT_ID, TENANT_ID, VAULT_URI, FakeCredentialFactory
from voxrelay.config import CredentialSettings, FoundrySettings, SpeechSettings

ENV_VARS = (
    "AZURE_KEY_VAULT_URI",
    "AZURE_KEY_VAULT_CERTIFICATE_NAME",
    "AZURE_KEY_VAULT_CERTIFICATE_PASSWORD",
    "MICROSOFT_APP_TENANT_ID",
    "MICROSOFT_APP_ID",
    "MICROSOFT_APP_PASSWORD",
    "AZURE_CLIENT_ID",
    "MSI_ENDPOINT",
    "IDENTITY_ENDPOINT",
    "GRAPH_SCOPES",
    "VOXRELAY_CREDENTIAL_INIT_TIMEOUT",
    "AI_FOUNDRY_ENDPOINT",
    "AI_FOUNDRY_API_KEY",
    "AI_FOUNDRY_DEPLOYMENT_NAME",
    "AI_FOUNDRY_MODEL_NAME",
    "AI_FOUNDRY_TIMEOUT",
    "SPEECH_SERVICE_KEY",
    "SPEECH_SERVICE_REGION",
    "SPEECH_LANGUAGE",
    "SPEECH_VOICE_NAME",
    "SPEECH_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's Azure environment out of the tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def factory() -> FakeCredentialFactory:
    """Factory where every strategy would succeed."""
    return FakeCredentialFactory()


@pytest.fixture
def secret_settings() -> CredentialSettings:
    """Client secret configuration with a Key Vault."""
    return CredentialSettings(
        key_vault_uri=VAULT_URI,
        tenant_id=TENANT_ID,
        client_id=CLIENT_ID,
        client_secret="app-secret",
        init_timeout_seconds=2.0,
    )


@pytest.fixture
def certificate_settings() -> CredentialSettings:
    """Key Vault certificate configuration, no client secret."""
    return CredentialSettings(
        key_vault_uri=VAULT_URI,
        certificate_name=CERTIFICATE_NAME,
        tenant_id=TENANT_ID,
        client_id=CLIENT_ID,
        init_timeout_seconds=2.0,
    )


@pytest.fixture
def foundry_settings() -> FoundrySettings:
    return FoundrySettings(
        endpoint="https://relay.inference.ai.azure.com/v1/chat/completions",
        api_key="foundry-key",
        model_name="gpt-4",
    )


@pytest.fixture
def speech_settings() -> SpeechSettings:
    return SpeechSettings(key="speech-key", region="westeurope")
