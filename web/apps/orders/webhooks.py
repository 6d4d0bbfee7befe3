"""Webhook signature verification.

Courier and payment processor webhooks are signed with HMAC-SHA256 over the
raw request body, hex encoded. Verification is skipped when no secret is
configured (local development).
"""

import hashlib
import hmac

from .errors import InvalidSignature

SIGNATURE_HEADERS = ("X-Bobgo-Signature", "X-Signature")


def sign(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, headers, secret: str | None) -> None:
    """Check the request signature against ``secret``.

    Args:
        body: Raw request body.
        headers: Case-insensitive header mapping (``request.headers``).
        secret: Shared secret; falsy disables verification.

    Raises:
        InvalidSignature: Missing or mismatching signature.
    """
    if not secret:
        return
    provided = next((headers.get(h) for h in SIGNATURE_HEADERS if headers.get(h)), None)
    if not provided:
        raise InvalidSignature("missing signature header")
    if not hmac.compare_digest(sign(body, secret), provided.strip().lower()):
        raise InvalidSignature("signature mismatch")
