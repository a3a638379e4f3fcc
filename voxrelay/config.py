"""
Service Configuration

Environment-driven settings for the credential chain, the inference endpoint
and the speech engine. Variable names follow the Bot Framework / Azure
conventions the hosting environment already provides.
"""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_GRAPH_SCOPE = "https://graph.microsoft.com/.default"


class CredentialSettings(BaseSettings):
    """Inputs to the credential resolution chain."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    # Key Vault
    key_vault_uri: str | None = Field(default=None, validation_alias="AZURE_KEY_VAULT_URI")
    certificate_name: str | None = Field(
        default=None, validation_alias="AZURE_KEY_VAULT_CERTIFICATE_NAME"
    )
    certificate_password: str | None = Field(
        default=None, validation_alias="AZURE_KEY_VAULT_CERTIFICATE_PASSWORD"
    )

    # App registration
    tenant_id: str | None = Field(default=None, validation_alias="MICROSOFT_APP_TENANT_ID")
    client_id: str | None = Field(default=None, validation_alias="MICROSOFT_APP_ID")
    client_secret: str | None = Field(default=None, validation_alias="MICROSOFT_APP_PASSWORD")

    # Hints that we run inside Azure with an assigned identity
    managed_identity_client_id: str | None = Field(
        default=None, validation_alias="AZURE_CLIENT_ID"
    )
    msi_endpoint: str | None = Field(
        default=None, validation_alias=AliasChoices("MSI_ENDPOINT", "IDENTITY_ENDPOINT")
    )

    # Comma separated, e.g. "User.Read,OnlineMeetings.ReadWrite"
    graph_scopes: str | None = Field(default=None, validation_alias="GRAPH_SCOPES")

    init_timeout_seconds: float = Field(
        default=30.0, gt=0, validation_alias="VOXRELAY_CREDENTIAL_INIT_TIMEOUT"
    )

    @property
    def platform_identity_available(self) -> bool:
        """Whether the environment advertises a platform-assigned identity."""
        return bool(self.managed_identity_client_id or self.msi_endpoint)

    @property
    def certificate_configured(self) -> bool:
        return bool(
            self.key_vault_uri and self.certificate_name and self.tenant_id and self.client_id
        )

    @property
    def client_secret_configured(self) -> bool:
        return bool(self.tenant_id and self.client_id and self.client_secret)

    @property
    def graph_scope_list(self) -> list[str]:
        """Scopes for the graph client; the default scope when unset."""
        if self.graph_scopes is None:
            return [DEFAULT_GRAPH_SCOPE]
        return [scope.strip() for scope in self.graph_scopes.split(",") if scope.strip()]


class FoundrySettings(BaseSettings):
    """Settings for the language-model inference endpoint."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    endpoint: str | None = Field(default=None, validation_alias="AI_FOUNDRY_ENDPOINT")
    api_key: str | None = Field(default=None, validation_alias="AI_FOUNDRY_API_KEY")
    deployment_name: str | None = Field(
        default=None, validation_alias="AI_FOUNDRY_DEPLOYMENT_NAME"
    )
    model_name: str = Field(default="gpt-4", validation_alias="AI_FOUNDRY_MODEL_NAME")
    timeout_seconds: float = Field(default=30.0, validation_alias="AI_FOUNDRY_TIMEOUT")


class SpeechSettings(BaseSettings):
    """Settings for the speech recognition / synthesis engine."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    key: str | None = Field(default=None, validation_alias="SPEECH_SERVICE_KEY")
    region: str | None = Field(default=None, validation_alias="SPEECH_SERVICE_REGION")
    language: str = Field(default="en-US", validation_alias="SPEECH_LANGUAGE")
    voice_name: str = Field(default="en-US-JennyNeural", validation_alias="SPEECH_VOICE_NAME")
    timeout_seconds: float = Field(default=30.0, validation_alias="SPEECH_TIMEOUT")
