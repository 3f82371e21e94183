import asyncio
from datetime import datetime, timezone

from click.testing import CliRunner
from conftest import LISTING_URL, SITE, listing_html, make_pdf
from rich.console import Console

import regdocs.cli
from regdocs.cli import cli, render_cycle
from regdocs.core.config import get_settings
from regdocs.core.storage import ObjectUploader
from regdocs.fetchers import ListingFetcher
from regdocs.models.document import Category, DocumentReference
from regdocs.models.ingestion import CycleResult, DocumentOutcome, DocumentState, FailureStage, ListingResult
from regdocs.services.ingestion_pipeline import IngestionPipeline


def test_sources_lists_configured_sources(monkeypatch, settings):
    monkeypatch.setenv("SOURCES_FILE", str(settings.sources_file))
    get_settings.cache_clear()
    try:
        result = CliRunner().invoke(cli, ["sources"])
    finally:
        get_settings.cache_clear()

    assert result.exit_code == 0, result.output
    assert "test-series" in result.output


def test_render_cycle_counts_states():
    reference = DocumentReference(
        title="Decision",
        category=Category.DECISION,
        published_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        source_url="https://docs.example.test/a.pdf",
    )
    cycle = CycleResult(listings=[
        ListingResult(
            source_name="f1",
            discovered=3,
            known=1,
            outcomes=[
                DocumentOutcome(reference=reference, state=DocumentState.NOTIFIED),
                DocumentOutcome(reference=reference, state=DocumentState.FAILED, stage=FailureStage.UPLOAD),
            ],
        )
    ])

    console = Console(record=True, width=160)
    console.print(render_cycle(cycle))
    text = console.export_text()

    assert "f1" in text
    assert cycle.count(DocumentState.NOTIFIED) == 1
    assert cycle.summary()["failed"] == 1


class SlowFetcher:
    def __init__(self, payload):
        self.payload = payload

    async def fetch(self, url):
        await asyncio.sleep(0.2)
        return self.payload


def test_poll_keeps_cycling_after_run_timeout(monkeypatch, settings, site, object_store, emitter):
    timed = settings.model_copy(update={"run_timeout": 0.05})
    payload = make_pdf("A")
    site.add(LISTING_URL, listing_html([("/files/a.pdf", "A", "07.12.25 14:25")]))
    site.add(f"{SITE}/files/a.pdf", payload)
    cycles = []

    class CountingPipeline(IngestionPipeline):
        def __init__(self, settings=None):
            super().__init__(
                settings=settings,
                listing_fetcher=ListingFetcher(settings, client=site.client()),
                document_fetcher=SlowFetcher(payload),
                uploader=ObjectUploader(settings, client=object_store.client()),
                emitter=emitter,
            )

        async def run_cycle(self, stop_event=None, timeout=None):
            result = await super().run_cycle(stop_event=stop_event, timeout=timeout)
            cycles.append(result)
            if len(cycles) >= 3:
                stop_event.set()
            return result

    monkeypatch.setattr(regdocs.cli, "get_settings", lambda: timed)
    monkeypatch.setattr(regdocs.cli, "IngestionPipeline", CountingPipeline)

    result = CliRunner().invoke(cli, ["poll", "--interval", "0.01"])

    assert result.exit_code == 0, result.output
    assert len(cycles) == 3
    for cycle in cycles:
        assert [outcome.stage for outcome in cycle.outcomes] == [FailureStage.UPLOAD]
