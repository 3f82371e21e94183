"""Inngest client configuration."""

import logging
from typing import Optional

import inngest

from ..core.config import Settings, get_settings


def create_inngest_client(settings: Optional[Settings] = None) -> inngest.Inngest:
    """Create the Inngest client used for notifications and scheduled runs."""
    settings = settings or get_settings()
    return inngest.Inngest(
        app_id=settings.inngest_app_id,
        event_key=settings.inngest_event_key,
        is_production=settings.inngest_is_production,
        logger=logging.getLogger("inngest"),
    )


inngest_client = create_inngest_client()
