"""Ingestion trigger endpoint."""

import datetime
from typing import Any, Dict

import inngest
from fastapi import APIRouter, HTTPException

from ..core.logging import get_logger
from ..ingestion_functions.client import inngest_client
from ..ingestion_functions.schedulers import INGESTION_REQUESTED_EVENT

router = APIRouter()
logger = get_logger(__name__)


@router.post("/trigger-ingestion")
async def trigger_ingestion() -> Dict[str, Any]:
    """Request an ingestion cycle through Inngest."""
    triggered_at = datetime.datetime.now(datetime.timezone.utc).isoformat()
    try:
        event_ids = await inngest_client.send(
            inngest.Event(
                name=INGESTION_REQUESTED_EVENT,
                data={"triggered_by": "api", "triggered_at": triggered_at},
            )
        )
    except Exception as e:
        logger.error("Error requesting ingestion", error=str(e))
        raise HTTPException(
            status_code=502,
            detail=f"Failed to request ingestion: {e}",
        ) from e

    logger.info("Requested ingestion cycle", event_ids=event_ids)
    return {
        "status": "accepted",
        "event": INGESTION_REQUESTED_EVENT,
        "inngest_event_ids": list(event_ids or []),
        "timestamp": triggered_at,
    }
