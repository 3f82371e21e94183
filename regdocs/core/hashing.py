"""Content fingerprinting.

The digest doubles as the canonical dedup key and as the object storage key,
so the algorithm is part of the durable contract. Changing it requires a new
``HASH_VERSION`` and a migration of existing records and objects.
"""

import hashlib
from typing import Union

HASH_ALGORITHM = "sha256"
HASH_VERSION = 1
DIGEST_LENGTH = 64


class ContentHasher:
    """Computes a stable fingerprint for a byte payload."""

    algorithm = HASH_ALGORITHM
    version = HASH_VERSION

    def digest(self, payload: Union[bytes, bytearray, memoryview]) -> str:
        """Return the lowercase hex SHA-256 digest of ``payload``."""
        return hashlib.sha256(payload).hexdigest()

    def __call__(self, payload: Union[bytes, bytearray, memoryview]) -> str:
        return self.digest(payload)


def is_content_hash(value: str) -> bool:
    """Check whether ``value`` looks like a digest produced by ``ContentHasher``."""
    if len(value) != DIGEST_LENGTH:
        return False
    try:
        int(value, 16)
    except ValueError:
        return False
    return value == value.lower()
