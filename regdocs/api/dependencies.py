"""Shared dependencies for API routes."""

from functools import lru_cache

from ..core.registry import SourceRegistry
from ..services.metadata_store import MetadataStore


@lru_cache()
def get_store() -> MetadataStore:
    return MetadataStore()


@lru_cache()
def get_registry() -> SourceRegistry:
    return SourceRegistry()
