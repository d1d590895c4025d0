"""HMAC-SHA256 signing for webhook payloads."""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def _to_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def compute_signature(payload: str | bytes, secret: str | bytes) -> str:
    """Compute HMAC-SHA256 signature for a webhook payload.

    Args:
        payload: Exact request body that is sent.
        secret: Shared secret for HMAC.

    Returns:
        Signature in format "sha256=<hex_digest>".
    """
    digest = hmac.new(
        key=_to_bytes(secret),
        msg=_to_bytes(payload),
        digestmod=hashlib.sha256,
    ).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(payload: str | bytes, signature: str | bytes, secret: str | bytes) -> bool:
    """Verify HMAC-SHA256 signature for a webhook payload.

    Comparison is constant-time over bytes; a signature of the wrong
    length simply compares unequal.

    Args:
        payload: Body that was signed.
        signature: Signature to verify (format: "sha256=<hex_digest>").
        secret: Shared secret for HMAC.

    Returns:
        True if signature is valid, False otherwise.
    """
    expected = compute_signature(payload, secret).encode("ascii")
    return hmac.compare_digest(expected, _to_bytes(signature))


__all__ = ["SIGNATURE_PREFIX", "compute_signature", "verify_signature"]
