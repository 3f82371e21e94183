"""Ingestion outcome and event models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from .document import Category, DocumentRecord, DocumentReference


class DocumentState(str, Enum):
    """States of the per-document ingestion state machine."""
    DISCOVERED = "discovered"
    PRE_FILTERED_NEW = "pre_filtered_new"
    DOWNLOADED = "downloaded"
    CONTENT_CHECKED = "content_checked"
    UPLOADED = "uploaded"
    PERSISTED = "persisted"
    NOTIFIED = "notified"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    FAILED = "failed"


TERMINAL_STATES = frozenset({
    DocumentState.NOTIFIED,
    DocumentState.SKIPPED_DUPLICATE,
    DocumentState.FAILED,
    # Persisted is terminal only when the notification could not be delivered.
    DocumentState.PERSISTED,
})


class FailureStage(str, Enum):
    """Pipeline stage at which a document task failed."""
    DOWNLOAD = "download"
    CONTENT_CHECK = "content_check"
    UPLOAD = "upload"
    PERSIST = "persist"
    NOTIFY = "notify"


class IngestionEvent(BaseModel):
    """Notification payload shared with the downstream consumer."""
    model_config = ConfigDict(frozen=True)

    document_id: str
    title: str
    category: Category
    published_at: datetime
    storage_key: str
    page_count: int
    source_url: Optional[str] = None
    event: Optional[str] = None
    source_name: Optional[str] = None

    @property
    def idempotency_key(self) -> str:
        """Stable key the channel uses to collapse redeliveries."""
        return f"document-ingested-{self.document_id}"

    @classmethod
    def from_record(cls, record: DocumentRecord) -> "IngestionEvent":
        return cls(
            document_id=record.id,
            title=record.title,
            category=record.category,
            published_at=record.published_at,
            storage_key=record.storage_key,
            page_count=record.page_count,
            source_url=record.source_url,
            event=record.event,
            source_name=record.source_name,
        )


class DocumentOutcome(BaseModel):
    """Where a single document's journey ended."""

    reference: DocumentReference
    state: DocumentState
    stage: Optional[FailureStage] = None
    reason: Optional[str] = None
    document_id: Optional[str] = None
    content_hash: Optional[str] = None
    duplicate_of: Optional[str] = None
    page_count: int = 0

    @property
    def ingested(self) -> bool:
        return self.state in (DocumentState.PERSISTED, DocumentState.NOTIFIED)

    @property
    def is_failure(self) -> bool:
        return self.state == DocumentState.FAILED


class ListingResult(BaseModel):
    """Result of processing one listing source within a cycle."""

    source_name: str
    discovered: int = 0
    parse_skipped: int = 0
    known: int = 0
    repeated: int = 0
    deferred: int = 0
    error_message: Optional[str] = None
    outcomes: List[DocumentOutcome] = Field(default_factory=list)


class CycleResult(BaseModel):
    """Summary of one discovery cycle across all listing sources."""

    cycle_id: UUID = Field(default_factory=uuid4)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    aborted: bool = False
    error_message: Optional[str] = None
    redelivered: int = 0
    listings: List[ListingResult] = Field(default_factory=list)

    @property
    def outcomes(self) -> List[DocumentOutcome]:
        return [outcome for listing in self.listings for outcome in listing.outcomes]

    def count(self, state: DocumentState) -> int:
        return sum(1 for outcome in self.outcomes if outcome.state == state)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def summary(self) -> Dict[str, Any]:
        """Flat counters suitable for structured logging."""
        return {
            "cycle_id": str(self.cycle_id),
            "aborted": self.aborted,
            "discovered": sum(listing.discovered for listing in self.listings),
            "parse_skipped": sum(listing.parse_skipped for listing in self.listings),
            "known": sum(listing.known for listing in self.listings),
            "repeated": sum(listing.repeated for listing in self.listings),
            "deferred": sum(listing.deferred for listing in self.listings),
            "notified": self.count(DocumentState.NOTIFIED),
            "persisted_unnotified": self.count(DocumentState.PERSISTED),
            "skipped_duplicate": self.count(DocumentState.SKIPPED_DUPLICATE),
            "failed": self.count(DocumentState.FAILED),
            "redelivered": self.redelivered,
            "duration": self.duration_seconds,
        }
