"""Data models for the ingestion service."""

from .document import Category, DocumentRecord, DocumentReference, RenderedPage
from .ingestion import (
    CycleResult,
    DocumentOutcome,
    DocumentState,
    FailureStage,
    IngestionEvent,
    ListingResult,
)
from .source import ListingSelectors, ListingSource

__all__ = [
    "Category",
    "DocumentRecord",
    "DocumentReference",
    "RenderedPage",
    "CycleResult",
    "DocumentOutcome",
    "DocumentState",
    "FailureStage",
    "IngestionEvent",
    "ListingResult",
    "ListingSelectors",
    "ListingSource",
]
