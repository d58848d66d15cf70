"""CLI commands for managing wikitriage settings."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console

from wikitriage.configuration.settings import (
    DEFAULT_CONFIG_PATH,
    ConfigurationError,
    TriageSettings,
    load_settings,
    save_settings,
    validate_settings_file,
)

console = Console()
config_app = typer.Typer(help="Manage wikitriage configuration")


@config_app.command("init")
def init_config(
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
    api_url: Optional[str] = typer.Option(None, help="MediaWiki api.php URL"),
    operator: Optional[str] = typer.Option(None, help="Your wiki username"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
) -> None:
    """Write a settings file with defaults."""

    if config_path.exists() and not force:
        console.print(f"[yellow]{config_path} already exists (use --force to overwrite)[/yellow]")
        raise typer.Exit(code=1)

    overrides: Dict[str, Any] = {}
    if api_url:
        overrides.setdefault("feed", {})["api_url"] = api_url
    if operator:
        overrides.setdefault("filters", {})["operator_name"] = operator
    try:
        settings = TriageSettings.model_validate(overrides)
    except ValidationError as e:
        console.print(f"[red]Invalid option: {e}[/red]")
        raise typer.Exit(code=1)
    save_settings(settings, config_path)
    console.print(f"[green]✓ Configuration initialized at {config_path}[/green]")


@config_app.command("show")
def show_config(config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config")) -> None:
    """Display the effective configuration."""

    try:
        settings = load_settings(config_path)
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    console.print(yaml.safe_dump(settings.model_dump(mode="json"), default_flow_style=False, sort_keys=False))


@config_app.command("validate")
def validate_config(
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """Validate a configuration file."""

    errors = validate_settings_file(config_path)
    if errors:
        console.print(f"[red]❌ Configuration invalid: {config_path}[/red]")
        for error in errors:
            console.print(f"   {error}")
        raise typer.Exit(code=1)
    console.print(f"[green]✅ Configuration valid at {config_path}[/green]")
