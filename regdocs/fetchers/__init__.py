"""Fetchers for listing pages and documents."""

from .base_fetcher import BaseFetcher, create_http_client
from .document_fetcher import DocumentFetcher
from .listing_fetcher import ListingFetcher

__all__ = [
    "BaseFetcher",
    "create_http_client",
    "DocumentFetcher",
    "ListingFetcher",
]
