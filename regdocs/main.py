"""FastAPI application for regulatory document ingestion."""

import inngest.fast_api
from fastapi import FastAPI

from . import __version__
from .api.documents import router as documents_router
from .api.health import router as health_router
from .api.ingestion import router as ingestion_router
from .core.config import get_settings
from .core.logging import setup_logging
from .ingestion_functions import inngest_client, inngest_functions

setup_logging()

app = FastAPI(
    title="Regulatory Document Ingestion API",
    description="Discovers, deduplicates and stores published regulatory documents",
    version=__version__,
)

app.include_router(health_router)
app.include_router(ingestion_router)
app.include_router(documents_router)

# Serve the scheduled and on-demand ingestion functions
inngest.fast_api.serve(
    app=app,
    client=inngest_client,
    functions=inngest_functions,
)

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "regdocs.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower(),
    )
