"""Core services for the ingestion service."""

from .config import Settings, get_settings
from .hashing import ContentHasher
from .logging import get_logger, setup_logging
from .registry import SourceRegistry
from .signing import SignedRequestSigner
from .storage import ObjectUploader

__all__ = [
    "Settings",
    "get_settings",
    "ContentHasher",
    "setup_logging",
    "get_logger",
    "SourceRegistry",
    "SignedRequestSigner",
    "ObjectUploader",
]
