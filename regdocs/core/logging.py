"""Logging configuration for the ingestion service."""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.stdlib import LoggerFactory

from .config import Settings, get_settings


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Setup structured logging configuration."""
    settings = settings or get_settings()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if settings.log_format == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class DocumentLogger:
    """Specialized logger for a single document's journey through the pipeline."""

    def __init__(self, source_url: str, source_name: Optional[str] = None):
        self.logger = get_logger("document_processor")
        self.context = {
            "source_url": source_url,
            "source_name": source_name,
        }

    def bind(self, **kwargs: Any) -> None:
        """Attach extra context (document id, content hash) to later entries."""
        self.context.update(kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, **self.context, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.logger.error(message, **self.context, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.logger.warning(message, **self.context, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, **self.context, **kwargs)
