"""
voxrelay CLI Main Entry Point

The main Typer application that assembles all command groups.
"""

import asyncio
from typing import Annotated

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from voxrelay import __version__
from voxrelay.config import FoundrySettings
from voxrelay.credentials.errors import CredentialError
from voxrelay.inference.client import FoundryClient, InferenceError
from voxrelay.logging_config import configure_logging

logger = structlog.get_logger(__name__)
console = Console()

# Create the main app
app = typer.Typer(
    name="voxrelay",
    help="voxrelay - Voice and chat relay for Microsoft Teams",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(
            Panel(
                Text.from_markup(
                    f"[bold cyan]voxrelay[/bold cyan] v{__version__}\n"
                    "[dim]Voice and chat relay for Microsoft Teams[/dim]"
                ),
                title="Version",
                border_style="cyan",
            )
        )
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output.",
        ),
    ] = False,
) -> None:
    """
    voxrelay - Relay Teams chat and speech to an AI inference endpoint.
    """
    configure_logging(verbose=verbose)


from voxrelay.cli.credentials import app as credentials_app

app.add_typer(credentials_app, name="credentials", help="Inspect the Azure credential chain")


@app.command()
def serve(
    host: Annotated[str | None, typer.Option("--host", help="Bind address")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Bind port")] = None,
) -> None:
    """
    Run the HTTP API server.

    Example: voxrelay serve --port 8080
    """
    from voxrelay.api.config import settings
    from voxrelay.api.main import run

    if host:
        settings.host = host
    if port:
        settings.port = port
    run()


async def _ask(prompt: str) -> str:
    from voxrelay.config import CredentialSettings
    from voxrelay.credentials.resolver import CredentialResolver

    settings = FoundrySettings()
    resolver = None if settings.api_key else CredentialResolver(CredentialSettings())
    client = FoundryClient(settings, resolver=resolver)
    try:
        return await client.complete_with_retry(prompt)
    finally:
        await client.close()
        if resolver is not None:
            await resolver.aclose()


@app.command()
def ask(
    prompt: Annotated[str, typer.Argument(help="Question for the assistant")],
) -> None:
    """
    Send a single prompt to the inference endpoint.

    Example: voxrelay ask "Summarize the agenda"
    """
    try:
        reply = asyncio.run(_ask(prompt))
    except (CredentialError, InferenceError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(Panel(reply, title="Assistant", border_style="cyan"))


if __name__ == "__main__":
    app()
