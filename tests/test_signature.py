import hashlib
import hmac
import json

from services.signature import (
    canonical_bytes,
    compute_signature,
    normalize_payload,
    payload_digest,
    verify,
)
from tests.helpers import SECRET, signed_webhook, webhook_data


def test_canonical_form_sorts_keys_and_renders_values():
    payload = {"b": 2, "a": "x", "c": None, "d": True, "e": [{"z": 1, "y": 2}]}
    assert canonical_bytes(payload) == b'a=x&b=2&c=&d=true&e=[{"y":2,"z":1}]'


def test_signature_matches_hmac_sha256_hex():
    data = {"orderCode": 123, "amount": 2000}
    expected = hmac.new(SECRET, b"amount=2000&orderCode=123", hashlib.sha256).hexdigest()
    assert compute_signature(data, SECRET) == expected


def test_verify_accepts_signed_envelope():
    body = signed_webhook(webhook_data("ORD1"))
    signature = json.loads(body)["signature"]
    assert verify(body, signature, SECRET) is True


def test_verify_is_case_insensitive_on_hex():
    body = signed_webhook(webhook_data("ORD1"))
    signature = json.loads(body)["signature"].upper()
    assert verify(body, signature, SECRET) is True


def test_verify_rejects_tampered_payload():
    body = signed_webhook(webhook_data("ORD1", "CANCELLED"))
    signature = json.loads(body)["signature"]
    tampered = body.replace(b'"CANCELLED"', b'"PAID"')
    assert verify(tampered, signature, SECRET) is False


def test_verify_rejects_wrong_secret():
    body = signed_webhook(webhook_data("ORD1"), secret=b"someone-else")
    signature = json.loads(body)["signature"]
    assert verify(body, signature, SECRET) is False


def test_verify_fails_closed_on_bad_input():
    body = signed_webhook(webhook_data("ORD1"))
    signature = json.loads(body)["signature"]

    assert verify(b"not json", signature, SECRET) is False
    assert verify(b"[1, 2, 3]", signature, SECRET) is False
    assert verify(body, None, SECRET) is False
    assert verify(body, "", SECRET) is False
    assert verify(body, signature, b"") is False
    assert verify(body, signature[:-2], SECRET) is False
    assert verify(body, "zz" * 32, SECRET) is False
    assert verify(None, signature, SECRET) is False


def test_flat_payload_signs_everything_but_signature():
    data = {"orderReference": "ORD1", "status": "PAID"}
    body = json.dumps(dict(data, signature=compute_signature(data, SECRET))).encode()
    assert normalize_payload(body) == b"orderReference=ORD1&status=PAID"
    assert verify(body, json.loads(body)["signature"], SECRET) is True


def test_digest_ignores_key_order_and_signature():
    data = webhook_data("ORD1")
    first = signed_webhook(data)
    reordered = json.dumps({"signature": json.loads(first)["signature"], "data": dict(reversed(list(data.items())))}).encode()
    assert payload_digest(first) == payload_digest(reordered)
    assert payload_digest(first) != payload_digest(signed_webhook(webhook_data("ORD1", "CANCELLED")))
