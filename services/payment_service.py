"""
Payment Service: order creation and poll-driven reconciliation.
Wires the gateway client, order store and dispatcher together; the HTTP layer
only talks to this class.
"""

import logging
import time
from decimal import Decimal
from typing import List, Optional

from core.config import GatewayConfig, Settings
from models import Ack, EventSource, PaymentOrder
from services.audit_logger import log_order_created, log_status_change
from services.dispatcher import DispatchRequest, Dispatcher
from services.events import EventPublisher
from services.gateways import GatewayClient, get_payment_gateway
from services.order_store import OrderStore, build_order_store
from services.reconciliation import ReconciliationEngine

logger = logging.getLogger(__name__)


def new_order_reference() -> str:
    """PayOS order codes are positive integers; millisecond timestamps are the usual choice."""
    return str(int(time.time() * 1000))


class PaymentService:
    def __init__(
        self,
        store: OrderStore,
        gateway: GatewayClient,
        dispatcher: Dispatcher,
        gateway_config: GatewayConfig,
    ):
        self.store = store
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.gateway_config = gateway_config

    # ── Create Order (appointment / invoice checkout) ───────
    def create_order(
        self,
        internal_id: str,
        amount: Decimal,
        description: str,
        currency: str = "VND",
        order_reference: Optional[str] = None,
    ) -> PaymentOrder:
        """
        Creates the gateway payment link and records the order locally.
        The caller must not show the checkout URL until this returns.
        """
        reference = order_reference or new_order_reference()
        gw_order = self.gateway.create_order(
            order_reference=reference,
            amount=amount,
            description=description,
            return_url=self.gateway_config.return_url,
            cancel_url=self.gateway_config.cancel_url,
        )

        order = self.store.create_if_absent(PaymentOrder(
            order_reference=gw_order.order_reference,
            internal_id=internal_id,
            amount=amount,
            currency=currency,
            description=description,
            checkout_url=gw_order.checkout_url,
            payment_link_id=gw_order.payment_link_id,
            qr_code=gw_order.qr_code,
        ))
        log_order_created(order, self.gateway.name)
        logger.info(f"Payment order {order.order_reference} recorded for {internal_id}")
        return order

    def get_order(self, order_reference: str) -> Optional[PaymentOrder]:
        return self.store.get(order_reference)

    def list_orders(self, internal_id: str) -> List[PaymentOrder]:
        """Payment history for one booking"""
        return self.store.list_by_internal_id(internal_id)

    # ── Webhook ─────────────────────────────────────────────
    def handle_webhook(self, raw_body: bytes, signature: Optional[str] = None) -> Ack:
        return self.dispatcher.handle(DispatchRequest(
            source=EventSource.WEBHOOK,
            raw_payload=raw_body,
            signature=signature,
        ))

    # ── Poll ────────────────────────────────────────────────
    def sync_order(self, order_reference: str) -> Ack:
        """Ask the gateway for the order's status and reconcile it like any webhook."""
        gw_status = self.gateway.query_status(order_reference)
        return self.dispatcher.handle(DispatchRequest(
            source=EventSource.POLL,
            raw_payload=gw_status.raw_payload,
            order_reference=order_reference,
            reported_status=gw_status.status,
            gateway_reference=gw_status.gateway_reference,
            failure_reason=gw_status.failure_reason,
        ))


def build_payment_service(
    settings: Settings,
    store: Optional[OrderStore] = None,
    gateway: Optional[GatewayClient] = None,
) -> PaymentService:
    gateway_config = settings.gateway_config()
    store = store or build_order_store(settings.ORDER_STORE)
    gateway = gateway or get_payment_gateway(gateway_config)

    publisher = EventPublisher()
    publisher.subscribe(log_status_change)

    engine = ReconciliationEngine(
        store,
        publisher,
        max_attempts=settings.RECONCILE_MAX_ATTEMPTS,
        backoff_seconds=settings.RECONCILE_BACKOFF_SECONDS,
        backoff_cap_seconds=settings.RECONCILE_BACKOFF_CAP_SECONDS,
    )
    return PaymentService(store, gateway, Dispatcher(engine, gateway_config), gateway_config)
