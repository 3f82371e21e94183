"""Services for ingestion orchestration and persistence."""

from .dedup_index import DedupIndex, FilterResult
from .ingestion_pipeline import IngestionPipeline
from .metadata_store import MetadataStore, create_store_engine
from .notification_emitter import InngestNotificationEmitter, NotificationEmitter

__all__ = [
    "DedupIndex",
    "FilterResult",
    "IngestionPipeline",
    "MetadataStore",
    "create_store_engine",
    "InngestNotificationEmitter",
    "NotificationEmitter",
]
