"""Error taxonomy for the ingestion pipeline.

Leaf components raise these errors and never retry on their own. The
pipeline decides what is retryable with ``is_transient`` and confines every
per-document error to that document's outcome.
"""

from enum import Enum
from typing import Optional


class IngestionError(Exception):
    """Base error for ingestion."""


class FetchErrorKind(str, Enum):
    TIMEOUT = "timeout"
    TOO_LARGE = "too_large"
    HTTP_STATUS = "http_status"
    NETWORK = "network"


class UploadErrorKind(str, Enum):
    REJECTED = "rejected"
    NETWORK = "network"
    TIMEOUT = "timeout"


class RenderErrorKind(str, Enum):
    UNSUPPORTED_FORMAT = "unsupported_format"
    CONVERSION_FAILED = "conversion_failed"


class FetchError(IngestionError):
    """Raised when a listing page or document download fails."""

    def __init__(
        self,
        kind: FetchErrorKind,
        url: str,
        message: str = "",
        status_code: Optional[int] = None,
    ):
        self.kind = kind
        self.url = url
        self.status_code = status_code
        detail = f"HTTP {status_code}" if kind == FetchErrorKind.HTTP_STATUS else kind.value
        super().__init__(f"Failed to fetch {url}: {detail}{': ' + message if message else ''}")


class ParseError(IngestionError):
    """Raised for a single listing entry that cannot be parsed. Never fatal to the page."""

    def __init__(self, message: str, position: int, snippet: str = ""):
        self.position = position
        self.snippet = snippet
        super().__init__(f"Entry {position}: {message}")


class UploadError(IngestionError):
    """Raised when the object store refuses or cannot receive an upload."""

    def __init__(
        self,
        kind: UploadErrorKind,
        key: str,
        message: str = "",
        status_code: Optional[int] = None,
    ):
        self.kind = kind
        self.key = key
        self.status_code = status_code
        detail = f"HTTP {status_code}" if kind == UploadErrorKind.REJECTED else kind.value
        super().__init__(f"Failed to upload {key}: {detail}{': ' + message if message else ''}")


class RenderError(IngestionError):
    """Raised when a document cannot be converted into page images."""

    def __init__(self, kind: RenderErrorKind, message: str = ""):
        self.kind = kind
        super().__init__(f"{kind.value}{': ' + message if message else ''}")


class DuplicateKeyError(IngestionError):
    """Raised by the metadata store when an insert loses a uniqueness race."""

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"Duplicate {field}: {value}")


class StoreError(IngestionError):
    """Raised when the metadata store is unreachable or rejects a write."""


class NotificationError(IngestionError):
    """Raised when an ingestion event cannot be published."""


RETRYABLE_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})


def is_transient(exc: BaseException) -> bool:
    """Return True when retrying the failed operation may succeed."""
    if isinstance(exc, FetchError):
        if exc.kind in (FetchErrorKind.TIMEOUT, FetchErrorKind.NETWORK):
            return True
        if exc.kind == FetchErrorKind.HTTP_STATUS:
            return exc.status_code in RETRYABLE_STATUS_CODES
        return False
    if isinstance(exc, UploadError):
        if exc.kind in (UploadErrorKind.TIMEOUT, UploadErrorKind.NETWORK):
            return True
        return exc.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, NotificationError):
        return True
    return False
