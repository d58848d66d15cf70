"""Headless poll loop: print admissions, removals and feed status."""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path
from typing import Optional, Sequence

import typer
from rich.console import Console

from wikitriage.clients.mediawiki import MediaWikiFeedClient
from wikitriage.clients.ollama_client import OllamaClassifierClient
from wikitriage.configuration.settings import (
    DEFAULT_CONFIG_PATH,
    ConfigurationError,
    TriageSettings,
    load_settings,
)
from wikitriage.triage.context import TriageContext
from wikitriage.triage.enrichment import AIEnrichmentOrchestrator
from wikitriage.triage.events import FeedStatus, TriageListener
from wikitriage.triage.ingestion import IngestionFilterPipeline
from wikitriage.triage.models import EnrichmentResult, WorkItem
from wikitriage.triage.queue import TriageQueue

console = Console()


class ConsoleListener(TriageListener):
    """Prints queue activity as it happens."""

    def __init__(self, console: Console) -> None:
        self._console = console
        self._shown: set = set()

    def on_queue_changed(self, active: Sequence[WorkItem], cursor: Optional[WorkItem]) -> None:
        shown, self._shown = self._shown, {item.revision_id for item in active}
        for item in active:
            if item.revision_id in shown:
                continue
            sign = "+" if item.change_size > 0 else ""
            self._console.print(
                f"[cyan]{item.revision_id}[/cyan] {item.page.title} "
                f"by [bold]{item.author.name}[/bold] ({sign}{item.change_size}) "
                f"score {item.priority_score:.2f} warnings {item.author.current_severity.value}"
            )

    def on_item_removed(self, revision_id: int) -> None:
        self._console.print(f"[dim]{revision_id} removed[/dim]")

    def on_enrichment_updated(self, revision_id: int, result: EnrichmentResult) -> None:
        style = "red" if result.has_issues else "green"
        self._console.print(
            f"[{style}]{revision_id}: {result.action.value} ({result.probability:.0f}%) {result.summary}[/{style}]"
        )

    def on_feed_status(self, status: FeedStatus) -> None:
        if status is FeedStatus.DEGRADED:
            self._console.print("[red]Feed unreachable, retrying at maximum backoff[/red]")
        else:
            self._console.print("[green]Feed reachable again[/green]")


def watch(
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config"),
    auto_advance: bool = typer.Option(True, help="Move past the oldest item whenever the queue is full"),
) -> None:
    """Poll the recent-changes feed until interrupted."""

    try:
        settings = load_settings(config_path)
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    console.print(f"Watching {settings.feed.api_url} (Ctrl+C to stop)")
    asyncio.run(_watch(settings, auto_advance))
    console.print("\n[yellow]Stopped[/yellow]")


async def _watch(settings: TriageSettings, auto_advance: bool) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass

    classifier = None
    if settings.classifier.enabled:
        classifier = OllamaClassifierClient.from_settings(settings.classifier)

    async with MediaWikiFeedClient.from_settings(settings.feed) as feed:
        context = TriageContext.create(feed, settings, classifier, ConsoleListener(console))
        orchestrator = AIEnrichmentOrchestrator(classifier, settings.classifier)
        queue = TriageQueue(context, orchestrator)
        pipeline = IngestionFilterPipeline(context, queue, orchestrator)

        if auto_advance:
            context.listeners.add(_AutoAdvance(queue))
        try:
            await pipeline.run(stop)
        finally:
            if classifier is not None:
                await classifier.aclose()


class _AutoAdvance(TriageListener):
    """Keeps the queue from filling up when nobody is reviewing."""

    def __init__(self, queue: TriageQueue) -> None:
        self._queue = queue

    def on_queue_changed(self, active, cursor) -> None:
        if self._queue.is_full and cursor is not None:
            asyncio.get_running_loop().call_soon(self._queue.advance)
