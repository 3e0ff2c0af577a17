"""
Reconciliation State Machine

Authoritative status lifecycle of one payment order. Webhook and poll events
both go through `reconcile`; the first accepted event wins a transition and
later copies of it become duplicate or terminal no-ops.

    CREATED --pending--> PENDING --paid/cancelled/expired/failed--> [terminal]
    CREATED --any terminal report--> [terminal]
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Optional

from models import (
    AckOutcome,
    NotificationEvent,
    PaymentOrder,
    PaymentStatus,
    TERMINAL_STATUSES,
)
from services.errors import (
    ReconciliationContention,
    UnknownOrder,
    UnrecognizedStatus,
    VersionConflict,
)
from services.events import EventPublisher, OrderStatusChanged
from services.order_store import OrderStore
from services.signature import payload_digest

logger = logging.getLogger(__name__)

# Gateway status vocabulary -> local status
GATEWAY_STATUS_MAP: Dict[str, PaymentStatus] = {
    "PENDING": PaymentStatus.PENDING,
    "PROCESSING": PaymentStatus.PENDING,
    "UNDERPAID": PaymentStatus.PENDING,
    "PAID": PaymentStatus.PAID,
    "CANCELLED": PaymentStatus.CANCELLED,
    "EXPIRED": PaymentStatus.EXPIRED,
    "FAILED": PaymentStatus.FAILED,
}

ALLOWED_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.CREATED: frozenset({PaymentStatus.PENDING}) | TERMINAL_STATUSES,
    PaymentStatus.PENDING: TERMINAL_STATUSES,
    PaymentStatus.PAID: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
    PaymentStatus.EXPIRED: frozenset(),
    PaymentStatus.FAILED: frozenset(),
}


def map_gateway_status(order_reference: str, reported_status: Optional[str]) -> PaymentStatus:
    key = (reported_status or "").strip().upper()
    if key not in GATEWAY_STATUS_MAP:
        raise UnrecognizedStatus(order_reference, reported_status or "")
    return GATEWAY_STATUS_MAP[key]


def is_final(status: PaymentStatus) -> bool:
    """A status with no outgoing transitions never changes again."""
    return not ALLOWED_TRANSITIONS.get(status)


def settlement_details(target: PaymentStatus, event: NotificationEvent) -> Dict[str, Any]:
    """Extra columns written alongside a transition into a terminal status."""
    if target == PaymentStatus.PAID:
        return {"paid_at": event.received_at, "gateway_reference": event.gateway_reference}
    if target.is_terminal:
        return {"failure_reason": event.failure_reason}
    return {}


@dataclass(frozen=True)
class ReconcileResult:
    outcome: AckOutcome
    order: PaymentOrder
    attempts: int = 1


class ReconciliationEngine:
    """
    Applies verified notification events to payment orders.

    Safe to call from many threads at once: the only shared-state discipline
    is the optimistic `status_version` check in `OrderStore.apply_transition`.
    """

    def __init__(
        self,
        store: OrderStore,
        publisher: Optional[EventPublisher] = None,
        max_attempts: int = 5,
        backoff_seconds: float = 0.05,
        backoff_cap_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.publisher = publisher or EventPublisher()
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.backoff_cap_seconds = backoff_cap_seconds
        self._sleep = sleep

    def _backoff(self, attempt: int) -> float:
        return min(self.backoff_seconds * (2 ** (attempt - 1)), self.backoff_cap_seconds)

    def reconcile(self, event: NotificationEvent) -> ReconcileResult:
        digest = payload_digest(event.raw_payload)

        for attempt in range(1, self.max_attempts + 1):
            order = self.store.get(event.order_reference)
            if order is None:
                raise UnknownOrder(event.order_reference)

            if order.last_event_signature == digest:
                logger.info(
                    f"Duplicate {event.source.value} notification for order {order.order_reference}, ignoring"
                )
                return ReconcileResult(AckOutcome.DUPLICATE_IGNORED, order, attempt)

            if is_final(order.status):
                logger.info(
                    f"Order {order.order_reference} already {order.status.value}; "
                    f"ignoring late {event.source.value} report '{event.reported_status}'"
                )
                return ReconcileResult(AckOutcome.TERMINAL_IGNORED, order, attempt)

            target = map_gateway_status(order.order_reference, event.reported_status)

            # Every mapped status is reachable from CREATED and PENDING, so a
            # non-final order either already holds the target or may move to it
            if target == order.status:
                return ReconcileResult(AckOutcome.DUPLICATE_IGNORED, order, attempt)

            try:
                updated = self.store.apply_transition(
                    order.order_reference,
                    order.status_version,
                    target,
                    digest,
                    details=settlement_details(target, event),
                )
            except VersionConflict as e:
                if attempt == self.max_attempts:
                    break
                delay = self._backoff(attempt)
                logger.debug(f"{e}; retrying in {delay:.3f}s (attempt {attempt}/{self.max_attempts})")
                self._sleep(delay)
                continue

            self.publisher.publish(OrderStatusChanged(
                order_reference=updated.order_reference,
                old_status=order.status,
                new_status=updated.status,
                status_version=updated.status_version,
                source=event.source,
            ))
            return ReconcileResult(AckOutcome.APPLIED, updated, attempt)

        logger.warning(
            f"Reconciliation contention on order {event.order_reference} "
            f"after {self.max_attempts} attempts"
        )
        raise ReconciliationContention(event.order_reference, self.max_attempts)
