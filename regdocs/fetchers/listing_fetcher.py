"""Fetcher for listing pages."""

from typing import Union

from ..models.source import ListingSource
from .base_fetcher import BaseFetcher


class ListingFetcher(BaseFetcher):
    """Retrieves the raw HTML of a listing page."""

    async def fetch(self, source: Union[ListingSource, str]) -> bytes:
        url = source.url if isinstance(source, ListingSource) else source
        return await self._fetch_url(url)
