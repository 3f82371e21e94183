"""Document models for regulatory document ingestion."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.hashing import HASH_VERSION, is_content_hash


class Category(str, Enum):
    """Closed set of document categories published by the source."""
    REGULATION = "Regulation"
    DECISION = "Decision"
    BULLETIN = "Bulletin"
    OTHER = "Other"

    @classmethod
    def classify(cls, *labels: Optional[str]) -> "Category":
        """Map free-form listing labels (category label, title) onto a category.

        The first label carrying a recognised keyword decides; anything else is
        ``OTHER``.
        """
        for label in labels:
            if not label:
                continue
            text = label.lower()
            for category, keywords in _CATEGORY_KEYWORDS:
                if any(keyword in text for keyword in keywords):
                    return category
        return cls.OTHER


_CATEGORY_KEYWORDS = (
    (Category.DECISION, ("decision", "offence", "infringement", "penalty", "summons")),
    (Category.BULLETIN, ("bulletin", "note", "notice", "communication", "classification", "entry list")),
    (Category.REGULATION, ("regulation", "directive", "appendix", "code", "technical")),
)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DocumentReference(BaseModel):
    """A listing entry pointing at a published document. Never persisted."""
    model_config = ConfigDict(frozen=True)

    title: str = Field(..., min_length=1)
    category: Category
    published_at: datetime
    source_url: str = Field(..., min_length=1)
    event: Optional[str] = None
    source_name: Optional[str] = None

    @field_validator("published_at")
    @classmethod
    def normalize_published_at(cls, v: datetime) -> datetime:
        return _as_utc(v)


class DocumentRecord(BaseModel):
    """A successfully ingested document. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    source_url: str
    content_hash: str
    hash_version: int = HASH_VERSION
    title: str
    category: Category
    published_at: datetime
    storage_key: str
    page_count: int = Field(default=0, ge=0)
    ingested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    event: Optional[str] = None
    source_name: Optional[str] = None

    @field_validator("content_hash")
    @classmethod
    def validate_content_hash(cls, v: str) -> str:
        if not is_content_hash(v):
            raise ValueError("content_hash must be a 64 character lowercase hex digest")
        return v

    @field_validator("published_at", "ingested_at")
    @classmethod
    def normalize_timestamps(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @classmethod
    def from_reference(
        cls,
        reference: DocumentReference,
        document_id: str,
        content_hash: str,
        storage_key: str,
        page_count: int,
    ) -> "DocumentRecord":
        return cls(
            id=document_id,
            source_url=reference.source_url,
            content_hash=content_hash,
            title=reference.title,
            category=reference.category,
            published_at=reference.published_at,
            storage_key=storage_key,
            page_count=page_count,
            event=reference.event,
            source_name=reference.source_name,
        )


class RenderedPage(BaseModel):
    """One page image of a converted document, alive only during upload."""
    model_config = ConfigDict(frozen=True)

    document_id: str
    page_index: int = Field(..., ge=0)
    storage_key: str
