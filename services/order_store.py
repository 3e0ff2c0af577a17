"""
Order Store: persistence of payment orders keyed by gateway order reference.

`apply_transition` is a compare-and-swap on `status_version`; it is the only
concurrency primitive the reconciliation engine relies on.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError

from core.database import get_supabase
from models import PaymentOrder, PaymentStatus, utcnow
from services.errors import OrderConflict, UnknownOrder, VersionConflict

logger = logging.getLogger(__name__)

PAYMENT_ORDERS_TABLE = "payment_orders"
_UNIQUE_VIOLATION = "23505"


class OrderStore(ABC):
    """Contract every storage backend must honour."""

    @abstractmethod
    def get(self, order_reference: str) -> Optional[PaymentOrder]:
        ...

    @abstractmethod
    def list_by_internal_id(self, internal_id: str) -> List[PaymentOrder]:
        """All orders raised for one booking, newest first."""
        ...

    @abstractmethod
    def create_if_absent(self, order: PaymentOrder) -> PaymentOrder:
        """Persist a new order at status_version 0. Raises OrderConflict if the reference exists."""
        ...

    @abstractmethod
    def apply_transition(
        self,
        order_reference: str,
        expected_version: int,
        new_status: PaymentStatus,
        event_signature: Optional[str],
        details: Optional[Dict[str, Any]] = None,
    ) -> PaymentOrder:
        """
        Atomically set the new status and bump the version, only if the stored
        version equals `expected_version`. Raises VersionConflict otherwise.
        `details` holds extra settlement columns (paid_at, failure_reason, ...)
        written in the same step.
        """
        ...


class InMemoryOrderStore(OrderStore):
    """
    Process-local store, used by tests and by local development
    (ORDER_STORE=memory). Each call holds the lock for one atomic step.
    """

    def __init__(self):
        self._orders: Dict[str, PaymentOrder] = {}
        self._lock = threading.Lock()

    def get(self, order_reference: str) -> Optional[PaymentOrder]:
        with self._lock:
            order = self._orders.get(order_reference)
            return order.model_copy() if order else None

    def list_by_internal_id(self, internal_id: str) -> List[PaymentOrder]:
        with self._lock:
            matches = [o.model_copy() for o in self._orders.values() if o.internal_id == internal_id]
        return sorted(matches, key=lambda o: o.created_at, reverse=True)

    def create_if_absent(self, order: PaymentOrder) -> PaymentOrder:
        with self._lock:
            if order.order_reference in self._orders:
                raise OrderConflict(order.order_reference)
            now = utcnow()
            stored = order.model_copy(update={
                "status": PaymentStatus.CREATED,
                "status_version": 0,
                "last_event_signature": None,
                "gateway_reference": None,
                "paid_at": None,
                "failure_reason": None,
                "created_at": now,
                "updated_at": now,
            })
            self._orders[order.order_reference] = stored
            return stored.model_copy()

    def apply_transition(
        self,
        order_reference: str,
        expected_version: int,
        new_status: PaymentStatus,
        event_signature: Optional[str],
        details: Optional[Dict[str, Any]] = None,
    ) -> PaymentOrder:
        with self._lock:
            current = self._orders.get(order_reference)
            if current is None:
                raise UnknownOrder(order_reference)
            if current.status_version != expected_version:
                raise VersionConflict(order_reference, expected_version, current.status_version)
            updated = current.model_copy(update={
                **(details or {}),
                "status": new_status,
                "status_version": current.status_version + 1,
                "last_event_signature": event_signature,
                "updated_at": utcnow(),
            })
            self._orders[order_reference] = updated
            return updated.model_copy()


class SupabaseOrderStore(OrderStore):
    """Supabase-backed store. The version filter on the UPDATE makes it a CAS."""

    def __init__(self, client=None):
        self._client = client

    def _get_db(self):
        db = self._client or get_supabase()
        if not db:
            raise RuntimeError("Database unavailable")
        return db

    @staticmethod
    def _to_row(order: PaymentOrder) -> Dict[str, Any]:
        return {
            "order_reference": order.order_reference,
            "internal_id": order.internal_id,
            "amount": str(order.amount),
            "currency": order.currency,
            "status": order.status.value,
            "status_version": order.status_version,
            "last_event_signature": order.last_event_signature,
            "description": order.description,
            "checkout_url": order.checkout_url,
            "payment_link_id": order.payment_link_id,
            "qr_code": order.qr_code,
            "gateway_reference": order.gateway_reference,
            "paid_at": order.paid_at.isoformat() if order.paid_at else None,
            "failure_reason": order.failure_reason,
            "created_at": order.created_at.isoformat(),
            "updated_at": order.updated_at.isoformat(),
        }

    @staticmethod
    def _details_row(details: Dict[str, Any]) -> Dict[str, Any]:
        return {
            k: v.isoformat() if isinstance(v, datetime) else v
            for k, v in details.items()
        }

    @staticmethod
    def _from_row(row: Dict[str, Any]) -> PaymentOrder:
        return PaymentOrder(
            order_reference=str(row["order_reference"]),
            internal_id=str(row["internal_id"]),
            amount=Decimal(str(row["amount"])),
            currency=row.get("currency") or "VND",
            status=PaymentStatus(row["status"]),
            status_version=int(row.get("status_version") or 0),
            last_event_signature=row.get("last_event_signature"),
            description=row.get("description"),
            checkout_url=row.get("checkout_url"),
            payment_link_id=row.get("payment_link_id"),
            qr_code=row.get("qr_code"),
            gateway_reference=row.get("gateway_reference"),
            paid_at=row.get("paid_at"),
            failure_reason=row.get("failure_reason"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def get(self, order_reference: str) -> Optional[PaymentOrder]:
        result = (
            self._get_db()
            .table(PAYMENT_ORDERS_TABLE)
            .select("*")
            .eq("order_reference", order_reference)
            .execute()
        )
        if not result.data:
            return None
        return self._from_row(result.data[0])

    def list_by_internal_id(self, internal_id: str) -> List[PaymentOrder]:
        result = (
            self._get_db()
            .table(PAYMENT_ORDERS_TABLE)
            .select("*")
            .eq("internal_id", internal_id)
            .order("created_at", desc=True)
            .execute()
        )
        return [self._from_row(row) for row in result.data or []]

    def create_if_absent(self, order: PaymentOrder) -> PaymentOrder:
        if self.get(order.order_reference) is not None:
            raise OrderConflict(order.order_reference)

        now = utcnow()
        fresh = order.model_copy(update={
            "status": PaymentStatus.CREATED,
            "status_version": 0,
            "last_event_signature": None,
            "gateway_reference": None,
            "paid_at": None,
            "failure_reason": None,
            "created_at": now,
            "updated_at": now,
        })
        try:
            result = (
                self._get_db()
                .table(PAYMENT_ORDERS_TABLE)
                .insert(self._to_row(fresh))
                .execute()
            )
        except APIError as e:
            # Lost a race with another creator; the unique index is the arbiter
            if e.code == _UNIQUE_VIOLATION:
                raise OrderConflict(order.order_reference) from e
            raise

        if not result.data:
            raise RuntimeError(f"Failed to save payment order {order.order_reference}")
        return self._from_row(result.data[0])

    def apply_transition(
        self,
        order_reference: str,
        expected_version: int,
        new_status: PaymentStatus,
        event_signature: Optional[str],
        details: Optional[Dict[str, Any]] = None,
    ) -> PaymentOrder:
        result = (
            self._get_db()
            .table(PAYMENT_ORDERS_TABLE)
            .update({
                **self._details_row(details or {}),
                "status": new_status.value,
                "status_version": expected_version + 1,
                "last_event_signature": event_signature,
                "updated_at": utcnow().isoformat(),
            })
            .eq("order_reference", order_reference)
            .eq("status_version", expected_version)
            .execute()
        )
        if result.data:
            return self._from_row(result.data[0])

        current = self.get(order_reference)
        if current is None:
            raise UnknownOrder(order_reference)
        raise VersionConflict(order_reference, expected_version, current.status_version)


def build_order_store(backend: str) -> OrderStore:
    backend = backend.lower().strip()
    if backend == "memory":
        logger.warning("⚠️ Using in-memory order store; orders will not survive a restart")
        return InMemoryOrderStore()
    return SupabaseOrderStore()
