"""
Payment Gateway Abstraction Layer
Defines the contract the reconciliation engine's collaborators rely on,
so it can be exercised against a fake gateway without network access.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class GatewayOrder:
    order_reference: str
    amount: Decimal
    checkout_url: Optional[str] = None
    payment_link_id: Optional[str] = None
    qr_code: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GatewayStatus:
    order_reference: str
    status: str
    raw_payload: bytes
    gateway_reference: Optional[str] = None
    failure_reason: Optional[str] = None


class GatewayClient(ABC):
    """Abstract base class for payment gateways (PayOS, test fakes, ...)"""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the gateway name, e.g. 'payos'"""
        ...

    @abstractmethod
    def create_order(
        self,
        order_reference: str,
        amount: Decimal,
        description: str,
        return_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> GatewayOrder:
        """Create a payment link for an order. Raises GatewayError on failure."""
        ...

    @abstractmethod
    def query_status(self, order_reference: str) -> GatewayStatus:
        """Fetch the gateway's current view of an order. Raises GatewayError on failure."""
        ...
