"""
Payment Gateway Factory
Builds the gateway client from an explicit GatewayConfig.
"""

import logging
from core.config import GatewayConfig
from .base import GatewayClient, GatewayOrder, GatewayStatus

logger = logging.getLogger(__name__)


def get_payment_gateway(config: GatewayConfig) -> GatewayClient:
    """Returns the configured payment gateway (PayOS is the only live integration)."""
    from .payos import PayOSGateway
    gw = PayOSGateway(config)
    logger.info(f"🔌 Payment gateway initialized: {gw.name}")
    return gw


__all__ = ["GatewayClient", "GatewayOrder", "GatewayStatus", "get_payment_gateway"]
