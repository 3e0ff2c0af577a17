"""
Webhook Signature Verification
PayOS signs the `data` object of a notification:
  signature = hex( HMAC-SHA256( "k1=v1&k2=v2...", checksum_key ) )  with keys sorted
"""

import hmac
import hashlib
import json
import logging
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)


def _render_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def canonical_bytes(payload: Mapping[str, Any]) -> bytes:
    """Render a flat mapping as the sorted `key=value&...` string the gateway signs."""
    parts = [f"{key}={_render_value(payload[key])}" for key in sorted(payload)]
    return "&".join(parts).encode("utf-8")


def signed_section(document: Mapping[str, Any]) -> Mapping[str, Any]:
    """The part of a notification covered by the signature."""
    data = document.get("data")
    if isinstance(data, dict):
        return data
    return {k: v for k, v in document.items() if k != "signature"}


def normalize_payload(raw_payload: bytes) -> Optional[bytes]:
    """Canonical bytes of a raw JSON notification, or None if it is not a JSON object."""
    try:
        document = json.loads(raw_payload)
    except (TypeError, ValueError):
        return None
    if not isinstance(document, dict):
        return None
    return canonical_bytes(signed_section(document))


def payload_digest(raw_payload: bytes) -> str:
    """SHA-256 of the normalized payload; used to spot exact redeliveries."""
    normalized = normalize_payload(raw_payload)
    if normalized is None:
        normalized = raw_payload or b""
    return hashlib.sha256(normalized).hexdigest()


def compute_signature(payload: Mapping[str, Any], secret: bytes) -> str:
    return hmac.new(secret, canonical_bytes(payload), hashlib.sha256).hexdigest()


def verify(raw_payload: bytes, provided_signature: Optional[str], secret: bytes) -> bool:
    """
    Verify that `raw_payload` was signed by the gateway.

    Fails closed: any malformed payload, missing signature, missing secret or
    mismatched digest returns False. Never raises.
    """
    try:
        if not secret or not provided_signature or not isinstance(provided_signature, str):
            return False
        normalized = normalize_payload(raw_payload)
        if normalized is None:
            return False
        expected = hmac.new(secret, normalized, hashlib.sha256).hexdigest()
        # compare_digest walks the full length regardless of where bytes differ
        return hmac.compare_digest(
            expected.encode("ascii"), provided_signature.strip().lower().encode("utf-8")
        )
    except Exception as e:
        logger.warning(f"Signature verification error: {type(e).__name__}")
        return False
