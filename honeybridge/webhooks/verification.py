"""Webhook signature verification: constant-time HMAC.

Security contract:
- HMAC-SHA256 is computed over the raw request bytes, never a re-serialized body
- Comparison uses hmac.compare_digest() on equal-length byte strings
- Length mismatch -> False without calling compare_digest (length is not secret)
- Missing secret -> verification always fails (fail-closed)
- Malformed headers never raise; they simply do not verify
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)

SHOPIFY_SIGNATURE_HEADER = "x-shopify-hmac-sha256"


def compute_signature(secret: str, body: bytes) -> str:
    """Return the base64 HMAC-SHA256 of ``body`` keyed by ``secret``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(secret: str, body: bytes, signature_header: str | None) -> bool:
    """Verify a Shopify webhook HMAC-SHA256 signature.

    Shopify sends: X-Shopify-Hmac-SHA256 header (base64-encoded HMAC-SHA256).

    Args:
        secret: Shared webhook secret
        body: Raw request body bytes
        signature_header: Value of X-Shopify-Hmac-SHA256 header

    Returns:
        True if signature is valid
    """
    if not secret:
        logger.warning("SHOPIFY_WEBHOOK_SECRET not set; rejecting webhook")
        return False
    if not signature_header:
        return False

    try:
        presented = signature_header.encode("utf-8")
    except (AttributeError, UnicodeEncodeError):
        return False
    expected = compute_signature(secret, body).encode("ascii")

    if len(presented) != len(expected):
        return False
    return hmac.compare_digest(presented, expected)
