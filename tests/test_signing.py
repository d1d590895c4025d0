"""Tests for HMAC payload signing."""

from __future__ import annotations

import hashlib
import hmac

from courier.webhooks.signing import SIGNATURE_PREFIX, compute_signature, verify_signature


class TestComputeSignature:
    """Tests for compute_signature."""

    def test_format(self) -> None:
        """Signature is sha256= followed by 64 hex chars."""
        signature = compute_signature('{"id":"evt_1"}', "secret")
        assert signature.startswith(SIGNATURE_PREFIX)
        assert len(signature) == len(SIGNATURE_PREFIX) + 64

    def test_matches_hmac_sha256(self) -> None:
        """Signature is the hex HMAC-SHA256 of the payload bytes."""
        payload = '{"id":"evt_1","type":"document.processed"}'
        expected = hmac.new(b"secret", payload.encode(), hashlib.sha256).hexdigest()
        assert compute_signature(payload, "secret") == f"sha256={expected}"

    def test_str_and_bytes_agree(self) -> None:
        """Text and its UTF-8 bytes sign identically."""
        payload = '{"name":"Zoë"}'
        assert compute_signature(payload, "k") == compute_signature(payload.encode("utf-8"), b"k")

    def test_different_secrets_differ(self) -> None:
        assert compute_signature("body", "a") != compute_signature("body", "b")


class TestVerifySignature:
    """Tests for verify_signature."""

    def test_round_trip(self) -> None:
        """A freshly computed signature verifies."""
        payload = b'{"id":"evt_1","data":{"pages":3}}'
        assert verify_signature(payload, compute_signature(payload, "s3cret"), "s3cret")

    def test_altered_payload_fails(self) -> None:
        signature = compute_signature("original", "secret")
        assert not verify_signature("tampered", signature, "secret")

    def test_altered_secret_fails(self) -> None:
        signature = compute_signature("payload", "secret")
        assert not verify_signature("payload", signature, "other")

    def test_length_mismatch_is_false(self) -> None:
        """Truncated or empty signatures compare unequal without raising."""
        signature = compute_signature("payload", "secret")
        assert not verify_signature("payload", signature[:-4], "secret")
        assert not verify_signature("payload", "", "secret")

    def test_non_ascii_signature_is_false(self) -> None:
        assert not verify_signature("payload", "sha256=é", "secret")
