"""Object storage for original documents and rendered pages."""

from datetime import datetime, timezone
from typing import Callable, Dict, Optional
from urllib.parse import quote

import httpx

from .config import Settings, get_settings
from .errors import UploadError, UploadErrorKind
from .hashing import ContentHasher
from .logging import get_logger
from .signing import SignedRequestSigner

logger = get_logger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
PAGE_CONTENT_TYPE = "image/jpeg"
BINARY_CONTENT_TYPE = "application/octet-stream"


def document_storage_key(content_hash: str, prefix: str = "") -> str:
    """Key of the original document: ``{prefix}{content_hash}``."""
    return f"{prefix}{content_hash}"


def page_storage_key(document_key: str, page_index: int) -> str:
    """Key of a rendered page: ``{document_key}/{page_index}``."""
    if page_index < 0:
        raise ValueError("page_index must be >= 0")
    return f"{document_key}/{page_index}"


class ObjectUploader:
    """Writes payloads to an S3-compatible bucket with signed requests.

    Keys are content addressed, so a PUT repeated with the same bytes leaves
    the bucket unchanged and is always safe to retry.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
        signer: Optional[SignedRequestSigner] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or get_settings()
        self.hasher = ContentHasher()
        self.signer = signer or SignedRequestSigner(
            self.settings.s3_access_key,
            self.settings.s3_secret_key,
            self.settings.s3_region,
        )
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=self.settings.request_timeout)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def object_url(self, key: str) -> str:
        return f"{self.settings.object_store_base_url}/{quote(key, safe='/-_.~')}"

    def public_url(self, key: str) -> str:
        """URL consumers use to read an object."""
        if self.settings.s3_public_url:
            return f"{self.settings.s3_public_url.rstrip('/')}/{quote(key, safe='/-_.~')}"
        return self.object_url(key)

    async def put(self, key: str, payload: bytes, content_type: str) -> str:
        """Upload ``payload`` under ``key`` and return the object URL."""
        url = self.object_url(key)
        headers: Dict[str, str] = {"Content-Type": content_type}
        if self.settings.s3_acl:
            headers["x-amz-acl"] = self.settings.s3_acl

        signed = self.signer.sign(
            "PUT",
            url,
            payload_hash=self.hasher.digest(payload),
            now=self._clock(),
            headers=headers,
        )

        try:
            response = await self.client.put(url, content=payload, headers=signed)
        except httpx.TimeoutException as e:
            raise UploadError(UploadErrorKind.TIMEOUT, key, str(e)) from e
        except httpx.HTTPError as e:
            raise UploadError(UploadErrorKind.NETWORK, key, str(e)) from e

        if not response.is_success:
            raise UploadError(
                UploadErrorKind.REJECTED,
                key,
                response.text[:200],
                status_code=response.status_code,
            )

        logger.debug(
            "Uploaded object",
            key=key,
            content_type=content_type,
            size=len(payload),
            status_code=response.status_code,
        )
        return url

    async def get(self, key: str) -> bytes:
        """Download the object stored under ``key``."""
        url = self.object_url(key)
        signed = self.signer.sign("GET", url, now=self._clock())

        try:
            response = await self.client.get(url, headers=signed)
        except httpx.TimeoutException as e:
            raise UploadError(UploadErrorKind.TIMEOUT, key, str(e)) from e
        except httpx.HTTPError as e:
            raise UploadError(UploadErrorKind.NETWORK, key, str(e)) from e

        if not response.is_success:
            raise UploadError(UploadErrorKind.REJECTED, key, status_code=response.status_code)
        return response.content
