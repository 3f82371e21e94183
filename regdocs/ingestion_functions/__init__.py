"""Inngest functions for regulatory document ingestion."""

from .client import inngest_client
from .schedulers import INGESTION_REQUESTED_EVENT, run_ingestion, scheduled_ingestion

# Collect all functions for FastAPI integration
inngest_functions = [
    scheduled_ingestion,
    run_ingestion,
]

__all__ = [
    "inngest_client",
    "inngest_functions",
    "INGESTION_REQUESTED_EVENT",
    "scheduled_ingestion",
    "run_ingestion",
]
