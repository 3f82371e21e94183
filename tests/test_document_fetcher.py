import asyncio

import httpx
import pytest

from regdocs.core.errors import FetchError, FetchErrorKind, is_transient
from regdocs.fetchers import DocumentFetcher, ListingFetcher
from regdocs.models.source import ListingSource

URL = "https://docs.example.test/files/doc.pdf"


def fetcher_for(settings, handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DocumentFetcher(settings, client=client, **kwargs)


async def test_fetch_returns_body(settings):
    fetcher = fetcher_for(settings, lambda request: httpx.Response(200, content=b"%PDF-1.7 body"))
    assert await fetcher.fetch(URL) == b"%PDF-1.7 body"


async def test_http_status_error_carries_code(settings):
    fetcher = fetcher_for(settings, lambda request: httpx.Response(404))

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch(URL)

    assert exc_info.value.kind == FetchErrorKind.HTTP_STATUS
    assert exc_info.value.status_code == 404
    assert not is_transient(exc_info.value)


async def test_server_errors_are_transient(settings):
    fetcher = fetcher_for(settings, lambda request: httpx.Response(503))

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch(URL)

    assert is_transient(exc_info.value)


async def test_declared_length_over_limit_is_rejected(settings):
    fetcher = fetcher_for(
        settings,
        lambda request: httpx.Response(200, content=b"x" * 10),
        max_bytes=5,
    )

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch(URL)

    assert exc_info.value.kind == FetchErrorKind.TOO_LARGE
    assert not is_transient(exc_info.value)


async def test_streamed_body_over_limit_is_rejected(settings):
    async def chunks():
        for _ in range(4):
            yield b"abcd"

    fetcher = fetcher_for(
        settings,
        lambda request: httpx.Response(200, content=chunks()),
        max_bytes=10,
    )

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch(URL)

    assert exc_info.value.kind == FetchErrorKind.TOO_LARGE


async def test_timeout_maps_to_timeout_kind(settings):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(FetchError) as exc_info:
        await fetcher_for(settings, handler).fetch(URL)

    assert exc_info.value.kind == FetchErrorKind.TIMEOUT
    assert is_transient(exc_info.value)


async def test_trickling_download_hits_overall_deadline(settings):
    async def trickle():
        while True:
            yield b"x"
            await asyncio.sleep(0.02)

    deadline = settings.model_copy(update={"download_timeout": 0.1})
    fetcher = fetcher_for(deadline, lambda request: httpx.Response(200, content=trickle()))

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch(URL)

    assert exc_info.value.kind == FetchErrorKind.TIMEOUT
    assert is_transient(exc_info.value)


async def test_connection_failure_maps_to_network_kind(settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(FetchError) as exc_info:
        await fetcher_for(settings, handler).fetch(URL)

    assert exc_info.value.kind == FetchErrorKind.NETWORK
    assert is_transient(exc_info.value)


async def test_listing_fetcher_accepts_source(settings):
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, content=b"<html></html>")

    source = ListingSource(name="s", listing_url="https://docs.example.test/documents/season-2025")
    async with ListingFetcher(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler))) as fetcher:
        assert await fetcher.fetch(source) == b"<html></html>"

    assert seen == ["https://docs.example.test/documents/season-2025"]
