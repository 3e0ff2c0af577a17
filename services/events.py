"""
Domain events published by the reconciliation engine.

Downstream modules (appointment confirmation, receipts, notifications)
subscribe to OrderStatusChanged; it is published once per accepted transition.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List

from models import EventSource, PaymentStatus, utcnow
from services.error_monitoring import capture_exception

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderStatusChanged:
    order_reference: str
    old_status: PaymentStatus
    new_status: PaymentStatus
    status_version: int
    source: EventSource
    occurred_at: datetime = field(default_factory=utcnow)


Subscriber = Callable[[OrderStatusChanged], None]


class EventPublisher:
    """In-process fan-out to registered subscribers."""

    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(subscriber)

    def publish(self, event: OrderStatusChanged) -> None:
        with self._lock:
            subscribers = list(self._subscribers)

        logger.info(
            f"Order {event.order_reference}: {event.old_status.value} -> "
            f"{event.new_status.value} (v{event.status_version}, via {event.source.value})"
        )
        for subscriber in subscribers:
            # The transition is already committed; a failing consumer must not undo the ack
            try:
                subscriber(event)
            except Exception as e:
                capture_exception(e, {
                    "subscriber": getattr(subscriber, "__name__", repr(subscriber)),
                    "order_reference": event.order_reference,
                })
