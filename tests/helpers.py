"""Shared test doubles and webhook builders."""
import json
from decimal import Decimal
from typing import Any, Dict, List, Optional

from services.errors import GatewayError
from services.gateways import GatewayClient, GatewayOrder, GatewayStatus
from services.signature import compute_signature

SECRET = b"test-checksum-key"


class FakeGateway(GatewayClient):
    """In-memory gateway: records created orders and answers polls from `statuses`."""

    def __init__(self):
        self.created: List[Dict[str, Any]] = []
        self.statuses: Dict[str, Dict[str, Any]] = {}
        self.fail_with: Optional[Exception] = None

    @property
    def name(self) -> str:
        return "fake"

    def create_order(self, order_reference, amount, description, return_url=None, cancel_url=None):
        if self.fail_with:
            raise self.fail_with
        self.created.append({"order_reference": order_reference, "amount": amount})
        return GatewayOrder(
            order_reference=order_reference,
            amount=Decimal(amount),
            checkout_url=f"https://pay.test/{order_reference}",
            payment_link_id=f"link-{order_reference}",
            qr_code=f"qr-{order_reference}",
        )

    def query_status(self, order_reference):
        if self.fail_with:
            raise self.fail_with
        if order_reference not in self.statuses:
            raise GatewayError(f"unknown order {order_reference}")
        data = self.statuses[order_reference]
        return GatewayStatus(
            order_reference=order_reference,
            status=data["status"],
            gateway_reference=data.get("reference"),
            failure_reason=data.get("cancellationReason"),
            raw_payload=json.dumps(data, sort_keys=True).encode(),
        )


def signed_webhook(data: Dict[str, Any], secret: bytes = SECRET, signature: Optional[str] = None) -> bytes:
    """Build a PayOS-style webhook envelope signed with `secret`."""
    envelope = {
        "code": "00",
        "desc": "success",
        "success": True,
        "data": data,
        "signature": signature if signature is not None else compute_signature(data, secret),
    }
    return json.dumps(envelope).encode()


def webhook_data(order_reference: str, status: Optional[str] = "PAID", **extra) -> Dict[str, Any]:
    data = {
        "orderReference": order_reference,
        "amount": 150000,
        "description": "Appointment fee",
        "reference": "FT123456",
        "transactionDateTime": "2026-10-19 09:15:00",
        "currency": "VND",
        "code": "00",
        "desc": "success",
    }
    if status is not None:
        data["status"] = status
    data.update(extra)
    return data
