"""Scheduled and on-demand ingestion functions."""

from typing import Any, Dict, Optional

import inngest

from ..core.config import Settings, get_settings
from ..services.ingestion_pipeline import IngestionPipeline
from .client import inngest_client

INGESTION_REQUESTED_EVENT = "regdocs/ingestion.requested"


def schedule_trigger(settings: Optional[Settings] = None) -> inngest.TriggerCron:
    """Cron trigger for scheduled cycles, taken from ``ingestion_cron``."""
    settings = settings or get_settings()
    return inngest.TriggerCron(cron=settings.ingestion_cron)


async def _run_cycle_step() -> Dict[str, Any]:
    async with IngestionPipeline() as pipeline:
        result = await pipeline.run_cycle()
    return result.summary()


@inngest_client.create_function(
    fn_id="scheduled_ingestion",
    trigger=schedule_trigger(),
)
async def scheduled_ingestion(ctx: inngest.Context) -> Dict[str, Any]:
    """Poll every listing source on the configured schedule."""
    ctx.logger.info("Running scheduled ingestion")
    return await ctx.step.run("run_cycle", _run_cycle_step)


@inngest_client.create_function(
    fn_id="run_ingestion",
    trigger=inngest.TriggerEvent(event=INGESTION_REQUESTED_EVENT),
)
async def run_ingestion(ctx: inngest.Context) -> Dict[str, Any]:
    """Run one cycle when requested through the API or another service."""
    ctx.logger.info(f"Running requested ingestion: {ctx.event.data}")
    return await ctx.step.run("run_cycle", _run_cycle_step)
