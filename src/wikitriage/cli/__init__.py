"""Command line entry points for wikitriage."""

import logging

import typer
from typer import Typer

from ..configuration.cli import config_app
from .classifier import classifier_app
from .watch import watch


cli = Typer(help="Recent-changes triage tools")
cli.add_typer(config_app, name="config")
cli.add_typer(classifier_app, name="classifier")
cli.command("watch")(watch)


@cli.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


__all__ = ["cli"]
