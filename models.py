"""
Payment order model and enums shared by the reconciliation engine.
The database schema itself is managed by Supabase (table: payment_orders).
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentStatus(str, enum.Enum):
    CREATED = "CREATED"
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    PaymentStatus.PAID,
    PaymentStatus.CANCELLED,
    PaymentStatus.EXPIRED,
    PaymentStatus.FAILED,
})


class EventSource(str, enum.Enum):
    WEBHOOK = "WEBHOOK"
    POLL = "POLL"


class AckOutcome(str, enum.Enum):
    APPLIED = "APPLIED"
    DUPLICATE_IGNORED = "DUPLICATE_IGNORED"
    TERMINAL_IGNORED = "TERMINAL_IGNORED"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    UNKNOWN_ORDER = "UNKNOWN_ORDER"
    UNRECOGNIZED_STATUS = "UNRECOGNIZED_STATUS"
    RECONCILIATION_CONTENTION = "RECONCILIATION_CONTENTION"


# 2xx suppresses gateway redelivery; anything else asks the gateway to retry
_ACK_HTTP_STATUS = {
    AckOutcome.APPLIED: 200,
    AckOutcome.DUPLICATE_IGNORED: 200,
    AckOutcome.TERMINAL_IGNORED: 200,
    AckOutcome.INVALID_SIGNATURE: 401,
    AckOutcome.UNKNOWN_ORDER: 404,
    AckOutcome.UNRECOGNIZED_STATUS: 422,
    AckOutcome.RECONCILIATION_CONTENTION: 503,
}


class PaymentOrder(BaseModel):
    order_reference: str
    internal_id: str
    amount: Decimal
    currency: str = "VND"
    status: PaymentStatus = PaymentStatus.CREATED
    status_version: int = 0
    last_event_signature: Optional[str] = None
    description: Optional[str] = None
    checkout_url: Optional[str] = None
    payment_link_id: Optional[str] = None
    qr_code: Optional[str] = None
    # Settlement details, filled in by the transition that finalizes the order
    gateway_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


@dataclass(frozen=True)
class NotificationEvent:
    order_reference: str
    reported_status: str
    raw_payload: bytes
    source: EventSource
    signature: Optional[str] = None
    gateway_reference: Optional[str] = None
    failure_reason: Optional[str] = None
    received_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Ack:
    outcome: AckOutcome
    order_reference: Optional[str] = None
    status: Optional[PaymentStatus] = None
    status_version: Optional[int] = None

    @property
    def http_status(self) -> int:
        return _ACK_HTTP_STATUS[self.outcome]

    @property
    def is_success(self) -> bool:
        return self.http_status < 300
