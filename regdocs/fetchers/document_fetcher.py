"""Fetcher for document payloads."""

from .base_fetcher import BaseFetcher


class DocumentFetcher(BaseFetcher):
    """Downloads the binary payload a listing entry points at."""

    async def fetch(self, url: str) -> bytes:
        return await self._fetch_url(url)
