"""
Error taxonomy for the payment reconciliation engine.
"""


class PaymentEngineError(Exception):
    """Base class for all payment engine errors."""


class InvalidSignature(PaymentEngineError):
    """Webhook payload failed authentication."""


class UnknownOrder(PaymentEngineError):
    def __init__(self, order_reference: str):
        self.order_reference = order_reference
        super().__init__(f"No payment order for reference {order_reference}")


class UnrecognizedStatus(PaymentEngineError):
    def __init__(self, order_reference: str, reported_status: str):
        self.order_reference = order_reference
        self.reported_status = reported_status
        super().__init__(
            f"Unrecognized gateway status '{reported_status}' for order {order_reference}"
        )


class VersionConflict(PaymentEngineError):
    """Raised when the optimistic concurrency check on status_version fails."""

    def __init__(self, order_reference: str, expected: int, current: int):
        self.order_reference = order_reference
        self.expected_version = expected
        self.current_version = current
        super().__init__(
            f"Version conflict for {order_reference}: "
            f"expected version {expected}, current version {current}"
        )


class ReconciliationContention(PaymentEngineError):
    def __init__(self, order_reference: str, attempts: int):
        self.order_reference = order_reference
        self.attempts = attempts
        super().__init__(
            f"Gave up reconciling {order_reference} after {attempts} conflicting attempts"
        )


class OrderConflict(PaymentEngineError):
    def __init__(self, order_reference: str):
        self.order_reference = order_reference
        super().__init__(f"Payment order {order_reference} already exists")


class GatewayError(PaymentEngineError):
    """The payment gateway rejected a request or could not be reached."""
