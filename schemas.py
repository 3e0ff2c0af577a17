from pydantic import BaseModel, field_validator
from datetime import datetime
from decimal import Decimal
from typing import Optional
from models import Ack, AckOutcome, PaymentOrder, PaymentStatus


# Payment order schemas
class OrderCreate(BaseModel):
    internal_id: str
    amount: Decimal
    description: str = "Appointment fee"
    currency: str = "VND"

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v):
        if v <= 0:
            raise ValueError('Amount must be positive')
        return v

    @field_validator('internal_id')
    @classmethod
    def validate_internal_id(cls, v):
        if not v.strip():
            raise ValueError('internal_id is required')
        return v.strip()


class OrderResponse(BaseModel):
    order_reference: str
    internal_id: str
    amount: Decimal
    currency: str
    status: PaymentStatus
    status_version: int
    checkout_url: Optional[str] = None
    qr_code: Optional[str] = None
    gateway_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_order(cls, order: PaymentOrder) -> "OrderResponse":
        # last_event_signature stays server-side
        return cls(
            order_reference=order.order_reference,
            internal_id=order.internal_id,
            amount=order.amount,
            currency=order.currency,
            status=order.status,
            status_version=order.status_version,
            checkout_url=order.checkout_url,
            qr_code=order.qr_code,
            gateway_reference=order.gateway_reference,
            paid_at=order.paid_at,
            failure_reason=order.failure_reason,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class AckResponse(BaseModel):
    status: str
    outcome: AckOutcome
    message: str
    order_reference: Optional[str] = None
    order_status: Optional[PaymentStatus] = None
    status_version: Optional[int] = None


_ACK_MESSAGES = {
    AckOutcome.APPLIED: "Notification applied",
    AckOutcome.DUPLICATE_IGNORED: "Already processed",
    AckOutcome.TERMINAL_IGNORED: "Order already finalized",
    AckOutcome.INVALID_SIGNATURE: "Invalid signature",
    AckOutcome.UNKNOWN_ORDER: "Payment order not found",
    AckOutcome.UNRECOGNIZED_STATUS: "Unrecognized payment status",
    AckOutcome.RECONCILIATION_CONTENTION: "Temporarily unable to process, retry later",
}


def ack_response(ack: Ack) -> AckResponse:
    if not ack.is_success:
        # Error categories only; never echo internal order state
        return AckResponse(status="error", outcome=ack.outcome, message=_ACK_MESSAGES[ack.outcome])
    return AckResponse(
        status="success",
        outcome=ack.outcome,
        message=_ACK_MESSAGES[ack.outcome],
        order_reference=ack.order_reference,
        order_status=ack.status,
        status_version=ack.status_version,
    )
