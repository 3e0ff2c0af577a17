"""
Dispatcher: single entry point for webhook and poll notifications.

Webhooks must pass signature verification before anything touches the
order store; polls arrive over an authenticated outbound channel and skip it.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.config import GatewayConfig
from models import Ack, AckOutcome, EventSource, NotificationEvent
from services import signature
from services.errors import (
    InvalidSignature,
    ReconciliationContention,
    UnknownOrder,
    UnrecognizedStatus,
)
from services.reconciliation import ReconciliationEngine

logger = logging.getLogger(__name__)

# PayOS reports a successful payment with code "00" and no explicit status
GATEWAY_SUCCESS_CODE = "00"


@dataclass(frozen=True)
class DispatchRequest:
    source: EventSource
    raw_payload: bytes
    signature: Optional[str] = None
    order_reference: Optional[str] = None
    reported_status: Optional[str] = None
    gateway_reference: Optional[str] = None
    failure_reason: Optional[str] = None


def _load_document(raw_payload: bytes) -> Optional[Dict[str, Any]]:
    try:
        document = json.loads(raw_payload)
    except (TypeError, ValueError):
        return None
    return document if isinstance(document, dict) else None


def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None


def _webhook_order_reference(data: Dict[str, Any]) -> Optional[str]:
    return _optional_str(data.get("orderReference") or data.get("orderCode"))


def _webhook_reported_status(data: Dict[str, Any]) -> str:
    # Only the signed `data` object is trusted; the envelope code is unauthenticated
    status = data.get("status")
    if status:
        return str(status)
    code = data.get("code")
    if code is None:
        return ""
    code = str(code)
    return "PAID" if code == GATEWAY_SUCCESS_CODE else code


class Dispatcher:
    def __init__(self, engine: ReconciliationEngine, gateway_config: GatewayConfig):
        self.engine = engine
        self._secret = gateway_config.checksum_key

    def handle(self, request: DispatchRequest) -> Ack:
        if request.source == EventSource.WEBHOOK:
            try:
                event = self._webhook_event(request)
            except InvalidSignature:
                logger.warning("Rejected webhook: invalid signature")
                return Ack(AckOutcome.INVALID_SIGNATURE)
            if event is None:
                logger.warning("Signed webhook carries no order reference")
                return Ack(AckOutcome.UNKNOWN_ORDER)
        else:
            event = NotificationEvent(
                order_reference=str(request.order_reference or ""),
                reported_status=request.reported_status or "",
                raw_payload=request.raw_payload,
                source=EventSource.POLL,
                gateway_reference=request.gateway_reference,
                failure_reason=request.failure_reason,
            )
        return self._reconcile(event)

    def _webhook_event(self, request: DispatchRequest) -> Optional[NotificationEvent]:
        document = _load_document(request.raw_payload)
        provided = request.signature or (document or {}).get("signature")

        if not signature.verify(request.raw_payload, provided, self._secret):
            raise InvalidSignature("Webhook signature does not match payload")

        data = signature.signed_section(document)
        order_reference = _webhook_order_reference(data)
        if not order_reference:
            return None

        return NotificationEvent(
            order_reference=order_reference,
            reported_status=_webhook_reported_status(data),
            raw_payload=request.raw_payload,
            signature=provided,
            source=EventSource.WEBHOOK,
            gateway_reference=_optional_str(data.get("reference")),
            failure_reason=_optional_str(data.get("desc")),
        )

    def _reconcile(self, event: NotificationEvent) -> Ack:
        try:
            result = self.engine.reconcile(event)
        except UnknownOrder:
            logger.warning(f"{event.source.value} notification for unknown order {event.order_reference}")
            return Ack(AckOutcome.UNKNOWN_ORDER, event.order_reference)
        except UnrecognizedStatus as e:
            logger.error(f"Manual follow-up needed: {e}")
            return Ack(AckOutcome.UNRECOGNIZED_STATUS, event.order_reference)
        except ReconciliationContention as e:
            logger.warning(str(e))
            return Ack(AckOutcome.RECONCILIATION_CONTENTION, event.order_reference)

        return Ack(
            outcome=result.outcome,
            order_reference=result.order.order_reference,
            status=result.order.status,
            status_version=result.order.status_version,
        )
