"""Shared fixtures: settings, fake site, in-memory object store, recording emitter."""

from typing import Dict, List, Optional, Sequence, Tuple, Union

import fitz
import httpx
import pytest

from regdocs.core.config import Settings
from regdocs.core.errors import NotificationError
from regdocs.core.registry import SourceRegistry
from regdocs.core.storage import ObjectUploader
from regdocs.fetchers import DocumentFetcher, ListingFetcher
from regdocs.models.ingestion import IngestionEvent
from regdocs.services.ingestion_pipeline import IngestionPipeline
from regdocs.services.metadata_store import MetadataStore
from regdocs.services.notification_emitter import NotificationEmitter

SITE = "https://docs.example.test"
LISTING_URL = f"{SITE}/documents/season-2025"
OBJECT_STORE = "https://objects.example.test"
BUCKET = "regdocs"


def make_pdf(*texts: str) -> bytes:
    """Build a PDF with one page per text."""
    doc = fitz.open()
    for text in texts or ("page",):
        page = doc.new_page(width=200, height=200)
        page.insert_text((20, 40), text)
    payload = doc.tobytes()
    doc.close()
    return payload


def listing_html(
    entries: Sequence[Tuple[str, str, str]],
    event: Optional[str] = "Australian Grand Prix",
) -> str:
    """Render a listing page from (href, title, published) tuples."""
    rows = "".join(
        '<li class="document-row">'
        f'<a href="{href}"><span class="title">{title}</span></a>'
        f'<span class="published">{published}</span>'
        "</li>"
        for href, title, published in entries
    )
    heading = f'<div class="event-title">{event}</div>' if event else ""
    return (
        "<html><body>"
        f'<ul class="event-wrapper"><li>{heading}<ul>{rows}</ul></li></ul>'
        "</body></html>"
    )


class FakeSite:
    """Serves canned responses keyed by absolute URL."""

    def __init__(self):
        self.routes: Dict[str, Union[bytes, int, Exception]] = {}
        self.requests: List[str] = []

    def add(self, url: str, response: Union[bytes, str, int, Exception]) -> None:
        self.routes[url] = response.encode() if isinstance(response, str) else response

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        response = self.routes.get(url, 404)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, int):
            return httpx.Response(response)
        return httpx.Response(200, content=response)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def count(self, url: str) -> int:
        return self.requests.count(url)


class InMemoryObjectStore:
    """Minimal path-style S3 endpoint keeping objects in a dict."""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.requests: List[httpx.Request] = []
        self.fail_puts = 0
        self.fail_status = 503

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = request.url.path[len(f"/{BUCKET}/"):]
        if request.method == "PUT":
            if self.fail_puts:
                self.fail_puts -= 1
                return httpx.Response(self.fail_status)
            self.objects[key] = request.content
            self.content_types[key] = request.headers.get("content-type", "")
            return httpx.Response(200)
        if request.method == "GET" and key in self.objects:
            return httpx.Response(200, content=self.objects[key])
        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class RecordingEmitter(NotificationEmitter):
    """Records delivered events; fails the first ``failures`` attempts."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.attempts = 0
        self.published: List[IngestionEvent] = []

    async def publish(self, event: IngestionEvent) -> None:
        self.attempts += 1
        if self.failures:
            self.failures -= 1
            raise NotificationError("channel unavailable")
        self.published.append(event)


@pytest.fixture
def settings(tmp_path) -> Settings:
    sources_file = tmp_path / "sources.yaml"
    sources_file.write_text(
        "sources:\n"
        "  - name: test-series\n"
        f"    listing_url: {LISTING_URL}\n"
        "    timezone: UTC\n",
        encoding="utf-8",
    )
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'regdocs.db'}",
        sources_file=sources_file,
        s3_endpoint=OBJECT_STORE,
        s3_bucket=BUCKET,
        s3_region="us-east-1",
        s3_access_key="AKIDEXAMPLE",
        s3_secret_key="wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY",
        max_retries=2,
        retry_backoff=0,
        retry_backoff_max=0,
        render_dpi=36,
        max_concurrent_documents=4,
    )


@pytest.fixture
async def store(settings):
    store = MetadataStore(settings=settings)
    await store.create_schema()
    yield store
    await store.close()


@pytest.fixture
def site() -> FakeSite:
    return FakeSite()


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def emitter() -> RecordingEmitter:
    return RecordingEmitter()


@pytest.fixture
def build_pipeline(settings, store, site, object_store, emitter):
    """Factory for pipelines wired to the fakes; keyword arguments override parts."""

    def _build(**overrides) -> IngestionPipeline:
        components = {
            "settings": settings,
            "store": store,
            "registry": SourceRegistry(settings=settings),
            "listing_fetcher": ListingFetcher(settings, client=site.client()),
            "document_fetcher": DocumentFetcher(settings, client=site.client()),
            "uploader": ObjectUploader(settings, client=object_store.client()),
            "emitter": emitter,
        }
        components.update(overrides)
        return IngestionPipeline(**components)

    return _build
