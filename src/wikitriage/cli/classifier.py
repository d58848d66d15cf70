"""CLI commands for checking the classifier endpoint."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from wikitriage.clients.ollama_client import OllamaClassifierClient
from wikitriage.configuration.settings import DEFAULT_CONFIG_PATH, load_settings
from wikitriage.triage.exceptions import ClassifierError

console = Console()
classifier_app = typer.Typer(help="Inspect the Ollama classifier")


@classifier_app.command("models")
def list_models(config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config")) -> None:
    """List models installed on the configured Ollama server."""

    settings = load_settings(config_path).classifier

    async def _list():
        async with OllamaClassifierClient.from_settings(settings) as client:
            return await client.list_models()

    try:
        models = asyncio.run(_list())
    except ClassifierError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    if not models:
        console.print("[yellow]No models installed[/yellow]")
        return

    table = Table(title=f"Ollama models at {settings.server_url}")
    table.add_column("Model", style="cyan")
    table.add_column("Configured", justify="center")
    for name in models:
        configured = name in (settings.model, f"{settings.model}:latest")
        table.add_row(name, "✓" if configured else "")
    console.print(table)


@classifier_app.command("ping")
def ping(config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config")) -> None:
    """Check that the server answers and has the configured model."""

    settings = load_settings(config_path).classifier

    async def _ping():
        async with OllamaClassifierClient.from_settings(settings) as client:
            return await client.ping()

    if asyncio.run(_ping()):
        console.print(f"[green]✓ {settings.model} ready at {settings.server_url}[/green]")
    else:
        console.print(f"[red]✗ {settings.model} not available at {settings.server_url}[/red]")
        raise typer.Exit(code=1)
