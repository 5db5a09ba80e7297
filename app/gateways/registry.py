import logging
from typing import Optional

import httpx

from app.config import GatewayConfig
from app.gateways.base import BaseGateway
from app.gateways.cashfree import CashfreeGateway
from app.gateways.razorpay import RazorpayGateway
from app.gateways.simulated import SimulatedGateway

logger = logging.getLogger(__name__)


GATEWAY_CLASSES = {
    "razorpay": RazorpayGateway,
    "cashfree": CashfreeGateway,
}


def build_gateway(
    config: GatewayConfig,
    simulation_webhook_secret: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BaseGateway:
    """
    Returns the live adapter for `config.provider`, or a SimulatedGateway
    when its credentials are missing.
    """
    gateway_class = GATEWAY_CLASSES.get(config.provider)
    if gateway_class is None:
        raise ValueError(f"Unknown payment gateway: {config.provider}")

    if config.is_configured:
        logger.info(f"Using live {config.provider} gateway at {config.base_url}")
        return gateway_class(config, transport=transport)

    logger.warning(
        f"No {config.provider} credentials configured: donations run in SIMULATION mode"
    )
    simulated_config = GatewayConfig(
        provider="simulated",
        key_id=None,
        key_secret=None,
        webhook_secret=simulation_webhook_secret,
        base_url="",
        timeout_seconds=config.timeout_seconds,
    )
    return SimulatedGateway(simulated_config)
