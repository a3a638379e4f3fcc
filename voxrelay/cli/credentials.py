"""
Credential CLI Commands

Resolve the credential chain from the current environment and report the
outcome, without ever printing secret material.
"""

import asyncio
from datetime import datetime, timezone
from typing import Annotated

import structlog
import typer
from azure.core.exceptions import AzureError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from voxrelay.config import DEFAULT_GRAPH_SCOPE, CredentialSettings
from voxrelay.credentials.errors import CredentialError
from voxrelay.credentials.resolver import CredentialResolver

logger = structlog.get_logger(__name__)
console = Console()

app = typer.Typer(
    name="credentials",
    help="Inspect the Azure credential chain",
    no_args_is_help=True,
)


def _print_attempts(resolver: CredentialResolver) -> None:
    if not resolver.attempts:
        return

    table = Table(title="Failed Attempts", show_header=True, header_style="bold red")
    table.add_column("Strategy", style="cyan", no_wrap=True)
    table.add_column("Error", style="white")
    table.add_column("Time", style="dim")
    for attempt in resolver.attempts:
        table.add_row(
            attempt.strategy.value,
            attempt.error_message,
            attempt.timestamp.strftime("%H:%M:%S"),
        )
    console.print(table)


async def _check(timeout: float | None) -> bool:
    resolver = CredentialResolver(CredentialSettings())
    try:
        try:
            await resolver.wait_until_ready(timeout)
        except CredentialError as e:
            console.print(Panel(str(e), title="Credential Resolution Failed", border_style="red"))
            _print_attempts(resolver)
            return False

        health = resolver.get_health_status()
        table = Table(title="Credential Health", show_header=False, border_style="cyan")
        table.add_column("Component", style="cyan")
        table.add_column("Status", style="white")
        table.add_row("Strategy", health.strategy.value if health.strategy else "-")
        table.add_row("Credential", health.credential)
        table.add_row("Secret client", health.secret_client)
        table.add_row("Certificate client", health.certificate_client)
        table.add_row("Key Vault", health.key_vault_uri)
        console.print(table)
        _print_attempts(resolver)
        return True
    finally:
        await resolver.aclose()


@app.command("check")
def check(
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", "-t", help="Seconds to wait for resolution"),
    ] = None,
) -> None:
    """
    Resolve credentials and show which strategy won.

    Example:
        voxrelay credentials check
    """
    if not asyncio.run(_check(timeout)):
        raise typer.Exit(1)


async def _token_expiry(scopes: list[str]) -> int:
    resolver = CredentialResolver(CredentialSettings())
    try:
        await resolver.wait_until_ready()
        credential = resolver.get_credential()
        token = await credential.get_token(*scopes)
        return token.expires_on
    finally:
        await resolver.aclose()


@app.command("token")
def token(
    scope: Annotated[
        list[str] | None,
        typer.Option("--scope", "-s", help="Token scope (repeatable)"),
    ] = None,
) -> None:
    """
    Acquire a token and print when it expires. The token itself is never shown.

    Example:
        voxrelay credentials token --scope https://graph.microsoft.com/.default
    """
    scopes = scope or [DEFAULT_GRAPH_SCOPE]
    try:
        expires_on = asyncio.run(_token_expiry(scopes))
    except (CredentialError, AzureError) as e:
        console.print(f"[red]Failed to acquire token:[/red] {e}")
        raise typer.Exit(1)

    expires = datetime.fromtimestamp(expires_on, tz=timezone.utc)
    console.print(f"[green]Token acquired[/green] for {', '.join(scopes)}")
    console.print(f"Expires: [cyan]{expires.isoformat()}[/cyan]")
