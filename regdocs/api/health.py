"""Health check and status endpoints."""

import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends

from .. import __version__
from ..core.config import get_settings
from ..core.errors import StoreError
from ..core.logging import get_logger
from ..core.registry import SourceRegistry
from ..ingestion_functions.client import inngest_client
from ..services.metadata_store import MetadataStore
from .dependencies import get_registry, get_store

router = APIRouter()
logger = get_logger(__name__)


@router.get("/health")
async def health_check() -> Dict[str, Any]:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "regdocs-ingestion",
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "version": __version__,
    }


@router.get("/status")
async def system_status(
    store: MetadataStore = Depends(get_store),
    registry: SourceRegistry = Depends(get_registry),
) -> Dict[str, Any]:
    """Report sources, stored documents and pending notifications."""
    settings = get_settings()
    sources = registry.list_sources()

    database: Dict[str, Any] = {"status": "ok"}
    try:
        database["documents"] = await store.count_documents()
        database["pending_notifications"] = len(await store.pending_notifications())
    except StoreError as e:
        logger.error("Metadata store unavailable", error=str(e))
        database = {"status": "unavailable", "error": str(e)}

    return {
        "status": "operational" if database["status"] == "ok" else "degraded",
        "sources": {
            "total": len(sources),
            "active": len([s for s in sources if s.is_active]),
        },
        "database": database,
        "object_store": settings.object_store_base_url,
        "max_concurrent_documents": settings.max_concurrent_documents,
        "inngest_client_id": inngest_client.app_id,
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
    }
