"""
PayOS Payment Gateway Implementation
Uses the PayOS merchant REST API v2 (no SDK dependency).
"""

import json
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import requests

from core.config import GatewayConfig
from services.errors import GatewayError
from services.signature import compute_signature
from .base import GatewayClient, GatewayOrder, GatewayStatus

logger = logging.getLogger(__name__)

# PayOS rejects descriptions longer than 25 characters
MAX_DESCRIPTION_LENGTH = 25
SUCCESS_CODE = "00"


def truncate_description(description: str) -> str:
    if len(description) > MAX_DESCRIPTION_LENGTH:
        return description[:MAX_DESCRIPTION_LENGTH - 3] + "..."
    return description


class PayOSGateway(GatewayClient):
    """PayOS implementation of the payment gateway."""

    def __init__(self, config: GatewayConfig, session: Optional[requests.Session] = None):
        self._config = config
        self._session = session or requests.Session()
        if config.client_id and config.api_key and config.checksum_key:
            logger.info("✅ PayOS gateway credentials loaded")
        else:
            logger.warning("⚠️ PayOS credentials missing")

    @property
    def name(self) -> str:
        return "payos"

    # ── helpers ──────────────────────────────────────────────
    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-client-id": self._config.client_id,
            "x-api-key": self._config.api_key,
        }

    def _unwrap(self, resp: requests.Response, operation: str) -> Dict[str, Any]:
        if resp.status_code not in (200, 201):
            logger.error(f"PayOS {operation} failed with HTTP {resp.status_code}")
            raise GatewayError(f"PayOS {operation} failed with HTTP {resp.status_code}")
        try:
            body = resp.json()
        except ValueError as e:
            raise GatewayError(f"PayOS {operation} returned a non-JSON body") from e
        if str(body.get("code")) != SUCCESS_CODE or not isinstance(body.get("data"), dict):
            logger.error(f"PayOS {operation} rejected: {body.get('code')} {body.get('desc')}")
            raise GatewayError(f"PayOS {operation} rejected: {body.get('desc')}")
        return body["data"]

    # ── create_order ────────────────────────────────────────
    def create_order(
        self,
        order_reference: str,
        amount: Decimal,
        description: str,
        return_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> GatewayOrder:
        if not self._config.client_id or not self._config.api_key:
            raise GatewayError("PayOS credentials not configured")

        # VND has no minor unit; PayOS expects whole numbers
        amount_vnd = int(Decimal(amount))
        signed_fields = {
            "amount": amount_vnd,
            "cancelUrl": cancel_url or self._config.cancel_url,
            "description": truncate_description(description),
            "orderCode": int(order_reference),
            "returnUrl": return_url or self._config.return_url,
        }
        payload = dict(signed_fields)
        payload["signature"] = compute_signature(signed_fields, self._config.checksum_key)

        try:
            resp = self._session.post(
                f"{self._config.base_url}/v2/payment-requests",
                headers=self._headers,
                json=payload,
                timeout=30,
            )
        except requests.RequestException as e:
            logger.error(f"PayOS create_order error: {e}")
            raise GatewayError("PayOS unreachable") from e

        data = self._unwrap(resp, "create_order")
        return GatewayOrder(
            order_reference=str(data.get("orderCode", order_reference)),
            amount=Decimal(str(data.get("amount", amount_vnd))),
            checkout_url=data.get("checkoutUrl"),
            payment_link_id=data.get("paymentLinkId"),
            qr_code=data.get("qrCode"),
            raw=data,
        )

    # ── query_status ────────────────────────────────────────
    def query_status(self, order_reference: str) -> GatewayStatus:
        try:
            resp = self._session.get(
                f"{self._config.base_url}/v2/payment-requests/{order_reference}",
                headers=self._headers,
                timeout=15,
            )
        except requests.RequestException as e:
            logger.error(f"PayOS query_status error: {e}")
            raise GatewayError("PayOS unreachable") from e

        data = self._unwrap(resp, "query_status")
        # Most recent bank transfer carries the settlement reference
        transactions = data.get("transactions") or []
        last_transaction = transactions[-1] if transactions else {}
        return GatewayStatus(
            order_reference=str(data.get("orderCode", order_reference)),
            status=str(data.get("status", "")),
            gateway_reference=last_transaction.get("reference"),
            failure_reason=data.get("cancellationReason"),
            raw_payload=json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8"),
        )
