"""AWS Signature Version 4 signing for S3-compatible object stores."""

from datetime import datetime, timezone
from typing import Dict, Mapping, Optional

from botocore.auth import SIGV4_TIMESTAMP, S3SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials

from .hashing import ContentHasher

EMPTY_PAYLOAD_HASH = ContentHasher().digest(b"")


class SignedRequestSigner:
    """Produces authorization headers for an object store request.

    The signature covers the method, canonical path, query string, the
    ``host``/``x-amz-*`` headers and the payload hash, scoped to the
    configured region and the ``s3`` service. Signing needs no round trip to
    the store; the same inputs at the same instant always produce the same
    headers.
    """

    service = "s3"

    def __init__(self, access_key: str, secret_key: str, region: str):
        self.region = region
        self._auth = S3SigV4Auth(Credentials(access_key, secret_key), self.service, region)

    def sign(
        self,
        method: str,
        url: str,
        payload_hash: Optional[str] = None,
        now: Optional[datetime] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, str]:
        """Return the headers to send with the request, ``Authorization`` included."""
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc)
        timestamp = now.strftime(SIGV4_TIMESTAMP)

        request = AWSRequest(method=method.upper(), url=url, headers=dict(headers or {}))
        request.context["timestamp"] = timestamp
        request.headers["X-Amz-Date"] = timestamp
        request.headers["X-Amz-Content-SHA256"] = payload_hash or EMPTY_PAYLOAD_HASH

        canonical_request = self._auth.canonical_request(request)
        string_to_sign = self._auth.string_to_sign(request, canonical_request)
        signature = self._auth.signature(string_to_sign, request)
        signed_headers = self._auth.signed_headers(self._auth.headers_to_sign(request))

        signed = {name: value for name, value in request.headers.items()}
        signed["Authorization"] = (
            f"AWS4-HMAC-SHA256 Credential={self._auth.scope(request)}, "
            f"SignedHeaders={signed_headers}, Signature={signature}"
        )
        return signed
