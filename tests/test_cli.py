"""Tests for the voxrelay CLI."""

import pytest
from azure.core.exceptions import ClientAuthenticationError
from typer.testing import CliRunner

from tests.fakes import FakeCredential, FakeCredentialFactory
from voxrelay import __version__
from voxrelay.cli.main import app
from voxrelay.config import DEFAULT_GRAPH_SCOPE
from voxrelay.credentials.resolver import CredentialResolver

runner = CliRunner()


class ScopeRestrictedCredential(FakeCredential):
    """Passes the Graph liveness check but is refused every other scope."""

    async def get_token(self, *scopes: str, **kwargs):
        if scopes != (DEFAULT_GRAPH_SCOPE,):
            raise ClientAuthenticationError("AADSTS65001: consent required")
        return await super().get_token(*scopes, **kwargs)


def use_factory(monkeypatch: pytest.MonkeyPatch, factory: FakeCredentialFactory) -> None:
    monkeypatch.setattr(
        "voxrelay.cli.credentials.CredentialResolver",
        lambda settings: CredentialResolver(settings, factory=factory),
    )


class TestCli:
    """Tests for the command line interface."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_credentials_check(self, monkeypatch: pytest.MonkeyPatch) -> None:
        use_factory(monkeypatch, FakeCredentialFactory())

        result = runner.invoke(app, ["credentials", "check"])

        assert result.exit_code == 0
        assert "DefaultAzureCredential" in result.output
        assert "initialized" in result.output

    def test_credentials_check_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        rejected = FakeCredential("default", error=ClientAuthenticationError("not logged in"))
        use_factory(monkeypatch, FakeCredentialFactory(default=rejected))

        result = runner.invoke(app, ["credentials", "check"])

        assert result.exit_code == 1
        assert "Credential Resolution Failed" in result.output

    def test_token_prints_expiry_only(self, monkeypatch: pytest.MonkeyPatch) -> None:
        credential = FakeCredential("default", token="super-secret-token")
        use_factory(monkeypatch, FakeCredentialFactory(default=credential))

        result = runner.invoke(app, ["credentials", "token", "--scope", "api://relay/.default"])

        assert result.exit_code == 0
        assert "Expires" in result.output
        assert "super-secret-token" not in result.output
        assert ("api://relay/.default",) in credential.calls

    def test_token_rejected_for_scope(self, monkeypatch: pytest.MonkeyPatch) -> None:
        credential = ScopeRestrictedCredential("default")
        use_factory(monkeypatch, FakeCredentialFactory(default=credential))

        result = runner.invoke(app, ["credentials", "token", "--scope", "api://relay/.default"])

        assert result.exit_code == 1
        assert "Failed to acquire token" in result.output
        assert not isinstance(result.exception, ClientAuthenticationError)

    def test_ask_without_endpoint(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AI_FOUNDRY_API_KEY", "key")

        result = runner.invoke(app, ["ask", "Hello"])

        assert result.exit_code == 1
        assert "AI_FOUNDRY_ENDPOINT" in result.output
