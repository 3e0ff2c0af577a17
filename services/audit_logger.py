"""
Audit Logging Service
Keeps a durable trail of payment order creation and status transitions.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.database import get_supabase
from models import PaymentOrder
from services.events import OrderStatusChanged

logger = logging.getLogger(__name__)

AUDIT_TABLE = "audit_logs"


def log_audit_event(
    event_type: str,
    action: str = "",
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    status: str = "success",
    error_message: Optional[str] = None,
    client=None,
):
    """
    Log audit event to database

    Event Types:
    - payment_create: Payment order recorded before checkout
    - payment_update: Payment status transition accepted by reconciliation
    """
    try:
        supabase = client or get_supabase()
        if not supabase:
            # Fallback to application logs if Supabase not available
            logger.info(f"[AUDIT] {event_type}: {action} - {status}")
            return None

        audit_data = {
            "event_type": event_type,
            "action": action,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "details": details,  # Supabase handles JSONB as dict directly
            "status": status,
            "error_message": error_message,
            "created_at": datetime.now(timezone.utc).isoformat()
        }

        result = supabase.table(AUDIT_TABLE).insert(audit_data).execute()

        if result.data:
            return result.data[0]
        return None
    except Exception as e:
        # Never fail the main operation due to audit logging issues
        logger.error(f"[AUDIT ERROR] Failed to log event {event_type}: {e}")
        return None


def log_order_created(order: PaymentOrder, gateway: str, client=None):
    """Log payment order creation"""
    return log_audit_event(
        event_type="payment_create",
        action=f"Payment order {order.order_reference} created",
        resource_type="payment_order",
        resource_id=order.order_reference,
        details={
            "internal_id": order.internal_id,
            "amount": str(order.amount),
            "currency": order.currency,
            "gateway": gateway,
        },
        client=client,
    )


def log_status_change(event: OrderStatusChanged, client=None):
    """Log an accepted payment status transition"""
    return log_audit_event(
        event_type="payment_update",
        action=f"Payment order {event.order_reference} moved to {event.new_status.value}",
        resource_type="payment_order",
        resource_id=event.order_reference,
        details={
            "status_change": f"{event.old_status.value} -> {event.new_status.value}",
            "status_version": event.status_version,
            "source": event.source.value,
        },
        client=client,
    )
