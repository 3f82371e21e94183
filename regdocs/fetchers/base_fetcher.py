"""Base fetcher for HTTP retrieval of listing pages and documents."""

import asyncio
import time
from typing import Optional, Tuple

import httpx

from ..core.config import Settings, get_settings
from ..core.errors import FetchError, FetchErrorKind
from ..core.logging import get_logger

logger = get_logger(__name__)


def create_http_client(settings: Optional[Settings] = None) -> httpx.AsyncClient:
    """Create the HTTP client shared by fetchers."""
    settings = settings or get_settings()
    return httpx.AsyncClient(
        timeout=settings.request_timeout,
        headers={"User-Agent": settings.user_agent},
        follow_redirects=True,
    )


class BaseFetcher:
    """Downloads a URL into memory, enforcing a size limit.

    Failures are raised as ``FetchError``; retrying is left to the caller.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
        max_bytes: Optional[int] = None,
    ):
        self.settings = settings or get_settings()
        self._owns_client = client is None
        self.client = client or create_http_client(self.settings)
        self.max_bytes = max_bytes or self.settings.max_document_bytes

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _fetch_url(self, url: str) -> bytes:
        """Fetch the full body of ``url`` within the download deadline."""
        start_time = time.monotonic()

        try:
            status_code, body = await asyncio.wait_for(
                self._read_body(url),
                timeout=self.settings.download_timeout,
            )
        except asyncio.TimeoutError as e:
            raise FetchError(
                FetchErrorKind.TIMEOUT,
                url,
                f"download exceeded {self.settings.download_timeout}s",
            ) from e
        except httpx.TimeoutException as e:
            raise FetchError(FetchErrorKind.TIMEOUT, url, str(e)) from e
        except httpx.HTTPError as e:
            raise FetchError(FetchErrorKind.NETWORK, url, str(e)) from e

        logger.debug(
            "Fetched URL",
            url=url,
            status_code=status_code,
            size=len(body),
            fetch_time=round(time.monotonic() - start_time, 3),
        )
        return body

    async def _read_body(self, url: str) -> Tuple[int, bytes]:
        async with self.client.stream("GET", url) as response:
            if response.status_code >= 400:
                raise FetchError(
                    FetchErrorKind.HTTP_STATUS,
                    url,
                    status_code=response.status_code,
                )

            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > self.max_bytes:
                raise FetchError(
                    FetchErrorKind.TOO_LARGE,
                    url,
                    f"declared {declared} bytes, limit {self.max_bytes}",
                )

            body = bytearray()
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) > self.max_bytes:
                    raise FetchError(
                        FetchErrorKind.TOO_LARGE,
                        url,
                        f"exceeded limit of {self.max_bytes} bytes",
                    )
            return response.status_code, bytes(body)
