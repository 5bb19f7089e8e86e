"""Notion webhook signature verification — constant-time HMAC.

Notion signs each delivery with the subscription's verification token:
X-Notion-Signature: sha256=<hex HMAC-SHA256 of the raw body>.

Security contract:
- Comparison uses hmac.compare_digest() (no timing side-channel)
- The digest is computed over the exact raw body bytes
- Missing signature -> rejected
"""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_HEADER = "x-notion-signature"
_SIGNATURE_PREFIX = "sha256="


def compute_signature(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of ``body`` keyed by ``secret``."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """True if ``signature`` matches the body's HMAC under ``secret``."""
    if not secret or not signature:
        return False
    provided = signature.strip().lower()
    if provided.startswith(_SIGNATURE_PREFIX):
        provided = provided[len(_SIGNATURE_PREFIX):]
    expected = compute_signature(secret, body)
    return hmac.compare_digest(expected.encode("ascii"), provided.encode("utf-8"))


def redact_token(token: str) -> str:
    """First 8 and last 4 characters only; short tokens are fully masked."""
    if len(token) <= 12:
        return "*" * len(token)
    return f"{token[:8]}…{token[-4:]}"
