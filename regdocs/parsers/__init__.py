"""Parsers for listing pages and document payloads."""

from .listing_parser import ListingParser, ParsedListing, parse_published
from .pdf_renderer import DocumentRenderer

__all__ = [
    "ListingParser",
    "ParsedListing",
    "parse_published",
    "DocumentRenderer",
]
