from datetime import datetime, timezone

import httpx
import pytest

from conftest import BUCKET, OBJECT_STORE, InMemoryObjectStore

from regdocs.core.errors import UploadError, UploadErrorKind, is_transient
from regdocs.core.hashing import ContentHasher
from regdocs.core.storage import (
    PDF_CONTENT_TYPE,
    ObjectUploader,
    document_storage_key,
    page_storage_key,
)

NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)


def uploader_for(settings, object_store):
    return ObjectUploader(settings, client=object_store.client(), clock=lambda: NOW)


def test_storage_keys_are_content_addressed():
    digest = ContentHasher().digest(b"doc")

    assert document_storage_key(digest) == digest
    assert document_storage_key(digest, prefix="documents/") == f"documents/{digest}"
    assert page_storage_key(digest, 0) == f"{digest}/0"
    assert page_storage_key(digest, 12) == f"{digest}/12"

    with pytest.raises(ValueError):
        page_storage_key(digest, -1)


async def test_put_sends_signed_request(settings, object_store):
    payload = b"%PDF-1.7 original"
    key = ContentHasher().digest(payload)

    url = await uploader_for(settings, object_store).put(key, payload, PDF_CONTENT_TYPE)

    assert url == f"{OBJECT_STORE}/{BUCKET}/{key}"
    assert object_store.objects[key] == payload

    request = object_store.requests[0]
    assert request.method == "PUT"
    assert request.headers["x-amz-acl"] == "public-read"
    assert request.headers["x-amz-content-sha256"] == key
    assert request.headers["x-amz-date"] == "20250314T120000Z"
    assert request.headers["content-type"] == PDF_CONTENT_TYPE
    assert request.headers["authorization"].startswith("AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/20250314/")


async def test_repeated_put_is_idempotent(settings, object_store):
    uploader = uploader_for(settings, object_store)
    payload = b"same bytes"
    key = ContentHasher().digest(payload)

    await uploader.put(key, payload, PDF_CONTENT_TYPE)
    await uploader.put(key, payload, PDF_CONTENT_TYPE)

    assert object_store.objects == {key: payload}


async def test_rejected_upload_carries_status(settings, object_store):
    object_store.fail_puts = 1
    object_store.fail_status = 403

    with pytest.raises(UploadError) as exc_info:
        await uploader_for(settings, object_store).put("k", b"x", PDF_CONTENT_TYPE)

    assert exc_info.value.kind == UploadErrorKind.REJECTED
    assert exc_info.value.status_code == 403
    assert not is_transient(exc_info.value)


async def test_throttled_upload_is_transient(settings, object_store):
    object_store.fail_puts = 1
    object_store.fail_status = 503

    with pytest.raises(UploadError) as exc_info:
        await uploader_for(settings, object_store).put("k", b"x", PDF_CONTENT_TYPE)

    assert is_transient(exc_info.value)


async def test_network_failure_maps_to_network_kind(settings):
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    uploader = ObjectUploader(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    with pytest.raises(UploadError) as exc_info:
        await uploader.put("k", b"x", PDF_CONTENT_TYPE)

    assert exc_info.value.kind == UploadErrorKind.NETWORK
    assert is_transient(exc_info.value)


async def test_get_round_trips_bytes(settings, object_store):
    uploader = uploader_for(settings, object_store)
    payload = b"%PDF-1.7 round trip"
    key = ContentHasher().digest(payload)

    await uploader.put(key, payload, PDF_CONTENT_TYPE)
    fetched = await uploader.get(key)

    assert ContentHasher().digest(fetched) == key


async def test_get_missing_object_is_rejected(settings, object_store):
    with pytest.raises(UploadError) as exc_info:
        await uploader_for(settings, object_store).get("missing")
    assert exc_info.value.status_code == 404


def test_public_url_prefers_configured_base(settings):
    uploader = ObjectUploader(settings, client=InMemoryObjectStore().client())
    assert uploader.public_url("abc/0") == f"{OBJECT_STORE}/{BUCKET}/abc/0"

    custom = settings.model_copy(update={"s3_public_url": "https://cdn.example.test/"})
    assert ObjectUploader(custom, client=InMemoryObjectStore().client()).public_url("abc/0") == (
        "https://cdn.example.test/abc/0"
    )
