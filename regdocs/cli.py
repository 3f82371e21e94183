"""Command line interface for the ingestion service."""

import asyncio
import signal
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from .core.config import get_settings
from .core.errors import StoreError, UploadError
from .core.hashing import ContentHasher
from .core.logging import get_logger, setup_logging
from .core.registry import SourceRegistry
from .core.storage import ObjectUploader, page_storage_key
from .models.ingestion import CycleResult, DocumentState
from .services.ingestion_pipeline import IngestionPipeline
from .services.metadata_store import MetadataStore

console = Console()
logger = get_logger(__name__)


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform's event loop
            pass


def render_cycle(result: CycleResult) -> Table:
    """Build a per-source summary table for one cycle."""
    table = Table(title=f"Cycle {result.cycle_id}")
    table.add_column("Source")
    table.add_column("Discovered", justify="right")
    table.add_column("Malformed", justify="right")
    table.add_column("Known", justify="right")
    table.add_column("Notified", justify="right")
    table.add_column("Unnotified", justify="right")
    table.add_column("Duplicates", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Deferred", justify="right")

    for listing in result.listings:
        states = [outcome.state for outcome in listing.outcomes]
        table.add_row(
            listing.source_name if not listing.error_message else f"{listing.source_name} (error)",
            str(listing.discovered),
            str(listing.parse_skipped),
            str(listing.known + listing.repeated),
            str(states.count(DocumentState.NOTIFIED)),
            str(states.count(DocumentState.PERSISTED)),
            str(states.count(DocumentState.SKIPPED_DUPLICATE)),
            str(states.count(DocumentState.FAILED)),
            str(listing.deferred),
        )
    return table


def _print_cycle(result: CycleResult) -> None:
    console.print(render_cycle(result))
    if result.redelivered:
        console.print(f"Redelivered {result.redelivered} pending notification(s)")
    if result.aborted:
        console.print(f"[red]Cycle aborted:[/red] {result.error_message}")

    failures = [outcome for outcome in result.outcomes if outcome.is_failure]
    for outcome in failures:
        stage = outcome.stage.value if outcome.stage else "unknown"
        console.print(f"[red]failed[/red] [{stage}] {outcome.reference.source_url}: {outcome.reason}")


@click.group()
@click.option("--log-level", default=None, help="Override the configured log level.")
def cli(log_level: Optional[str]) -> None:
    """Regulatory document ingestion."""
    settings = get_settings()
    if log_level:
        settings.log_level = log_level
    setup_logging(settings)


@cli.command("run-once")
@click.option("--timeout", type=float, default=None, help="Stop starting new work after this many seconds.")
def run_once(timeout: Optional[float]) -> None:
    """Run a single discovery cycle across all active sources."""

    async def _run() -> CycleResult:
        stop_event = asyncio.Event()
        _install_signal_handlers(stop_event)
        async with IngestionPipeline() as pipeline:
            return await pipeline.run_cycle(stop_event=stop_event, timeout=timeout)

    result = asyncio.run(_run())
    _print_cycle(result)
    if result.aborted:
        raise SystemExit(1)


@cli.command()
@click.option("--interval", type=float, default=None, help="Seconds between cycles.")
def poll(interval: Optional[float]) -> None:
    """Run discovery cycles until interrupted."""
    settings = get_settings()
    interval = interval if interval is not None else settings.poll_interval

    async def _poll() -> None:
        stop_event = asyncio.Event()
        _install_signal_handlers(stop_event)

        async with IngestionPipeline(settings=settings) as pipeline:
            while not stop_event.is_set():
                result = await pipeline.run_cycle(stop_event=stop_event)
                _print_cycle(result)
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    continue

        logger.info("Polling stopped")

    asyncio.run(_poll())


@cli.command("init-db")
def init_db() -> None:
    """Create the metadata tables if they do not exist."""

    async def _init() -> None:
        store = MetadataStore()
        try:
            await store.create_schema()
        finally:
            await store.close()

    try:
        asyncio.run(_init())
    except StoreError as e:
        raise click.ClickException(str(e)) from e
    console.print(f"Schema ready at {get_settings().database_url}")


@cli.command()
@click.argument("document_id")
def verify(document_id: str) -> None:
    """Re-download a stored original and check it against its content hash."""

    async def _verify() -> bool:
        store = MetadataStore()
        try:
            record = await store.get(document_id)
        finally:
            await store.close()
        if record is None:
            raise click.ClickException(f"Document {document_id} not found")

        async with ObjectUploader() as uploader:
            payload = await uploader.get(record.storage_key)
            missing = []
            for index in range(record.page_count):
                key = page_storage_key(record.storage_key, index)
                try:
                    await uploader.get(key)
                except UploadError:
                    missing.append(key)

        digest = ContentHasher().digest(payload)
        table = Table(title=record.title)
        table.add_column("Field")
        table.add_column("Value")
        table.add_row("Storage key", record.storage_key)
        table.add_row("Stored hash", record.content_hash)
        table.add_row("Fetched hash", digest)
        table.add_row("Pages", str(record.page_count))
        table.add_row("Missing pages", ", ".join(missing) or "none")
        console.print(table)
        return digest == record.content_hash and not missing

    try:
        ok = asyncio.run(_verify())
    except (StoreError, UploadError) as e:
        raise click.ClickException(str(e)) from e

    if not ok:
        console.print("[red]Verification failed[/red]")
        raise SystemExit(1)
    console.print("[green]Verified[/green]")


@cli.command()
@click.option("--active-only", is_flag=True, help="List only active sources.")
def sources(active_only: bool) -> None:
    """List configured listing sources."""
    registry = SourceRegistry()
    table = Table(title="Listing sources")
    table.add_column("Name")
    table.add_column("URL")
    table.add_column("Timezone")
    table.add_column("Active")

    for source in registry.list_sources(active_only=active_only):
        table.add_row(source.name, source.url, source.timezone, "yes" if source.is_active else "no")
    console.print(table)


if __name__ == "__main__":
    cli()
