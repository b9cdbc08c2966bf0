"""Typer CLI for the search sync service."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from cdc_search_sync.codec.extended_json import decode
from cdc_search_sync.codec.sanitizer import sanitize
from cdc_search_sync.config.loader import load_sync_config
from cdc_search_sync.config.models import SyncConfig
from cdc_search_sync.errors import StageError
from cdc_search_sync.mapping.mapper import map_event
from cdc_search_sync.observability.health import Status, check_platform_health
from cdc_search_sync.observability.logging_setup import configure_logging
from cdc_search_sync.sinks.elasticsearch import ElasticsearchIndex
from cdc_search_sync.sync.dispatcher import SyncDispatcher
from cdc_search_sync.sync.processor import ProcessingOutcome, SyncProcessor

console = Console()
app = typer.Typer(name="cdc-sync", help="Change-stream to search index sync")


def _load(config_path: str | None) -> SyncConfig:
    if config_path is not None and not Path(config_path).exists():
        console.print(f"[red]Config file not found: {config_path}[/red]")
        raise typer.Exit(1)
    try:
        return load_sync_config(config_path)
    except (ValueError, TypeError) as exc:
        console.print(f"[red]Invalid config:[/red] {exc}")
        raise typer.Exit(1) from exc


def _read_message(path: str) -> bytes:
    p = Path(path)
    if not p.exists():
        console.print(f"[red]Message file not found: {p}[/red]")
        raise typer.Exit(1)
    return p.read_bytes()


@app.command()
def validate(
    config_path: str = typer.Argument(..., help="Path to sync config YAML"),
) -> None:
    """Validate a sync configuration file."""
    config = _load(config_path)
    console.print(f"[green]Valid[/green] pipeline_id={config.pipeline_id}")
    console.print(f"  kafka:  {config.kafka.bootstrap_servers}")
    console.print(f"  topics: {config.kafka.topics}")
    console.print(f"  group:  {config.kafka.group_id}")
    console.print(f"  index:  {config.index.url}/{config.index.index_name}")
    dlq = "enabled" if config.dlq.enabled else "disabled"
    console.print(f"  dlq:    {dlq}")


@app.command()
def health(
    config_path: str | None = typer.Option(None, "--config", help="Sync config YAML"),
) -> None:
    """Check connectivity to Kafka and Elasticsearch."""
    config = _load(config_path)
    result = check_platform_health(config)

    table = Table(title="Sync Health")
    table.add_column("Component", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")

    for c in result.components:
        style = "green" if c.status == Status.HEALTHY else "red"
        table.add_row(c.name, f"[{style}]{c.status}[/{style}]", c.detail)

    console.print(table)
    if not result.healthy:
        raise typer.Exit(1)


@app.command()
def inspect(
    message_path: str = typer.Argument(..., help="File holding one raw change event"),
) -> None:
    """Show how a raw event would be normalized, without touching the index."""
    raw = _read_message(message_path)
    decoded = decode(sanitize(raw))
    event = decoded if isinstance(decoded, StageError) else map_event(decoded)
    if isinstance(event, StageError):
        console.print(f"[yellow]Skipped[/yellow] ({event.kind}): {event.reason}")
        raise typer.Exit(2)

    console.print(f"[green]{event.operation}[/green] id={event.document_key}")
    if event.document is not None:
        console.print_json(json.dumps(event.document.to_index()))


@app.command()
def replay(
    message_path: str = typer.Argument(..., help="File holding one raw change event"),
    config_path: str | None = typer.Option(None, "--config", help="Sync config YAML"),
) -> None:
    """Run one raw event through the full pipeline against the configured index."""
    config = _load(config_path)
    configure_logging(config.logging)
    raw = _read_message(message_path)

    async def _replay() -> ProcessingOutcome:
        index = ElasticsearchIndex(config.index, config.retry)
        await index.start()
        try:
            dispatcher = SyncDispatcher(
                index, write_timeout=config.index.write_timeout_seconds
            )
            return await SyncProcessor(dispatcher).process(raw, lambda: None)
        finally:
            await index.stop()

    outcome = asyncio.run(_replay())
    if outcome.failure is None:
        console.print(
            f"[green]Applied[/green] {outcome.operation} id={outcome.document_key}"
        )
        return
    style = "yellow" if outcome.acknowledged else "red"
    console.print(
        f"[{style}]{outcome.state}[/{style}] ({outcome.failure}): {outcome.reason}"
    )
    raise typer.Exit(2 if outcome.acknowledged else 1)


@app.command()
def run(
    config_path: str | None = typer.Argument(None, help="Path to sync config YAML"),
) -> None:
    """Run the sync pipeline (Kafka to Elasticsearch)."""
    config = _load(config_path)
    configure_logging(config.logging)

    from cdc_search_sync.pipeline.runner import SyncPipeline

    console.print(f"[yellow]Starting pipeline:[/yellow] {config.pipeline_id}")
    console.print(f"  topics: {config.kafka.topics}")
    console.print(f"  index:  {config.index.index_name}")

    runner = SyncPipeline(config)
    try:
        runner.start()
    except KeyboardInterrupt:
        runner.stop()
