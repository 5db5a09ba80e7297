from functools import lru_cache
from typing import Optional

from fastapi import Header, HTTPException, status

from app.config import settings
from app.gateways.base import BaseGateway
from app.gateways.registry import build_gateway


@lru_cache()
def get_gateway() -> BaseGateway:
    return build_gateway(
        settings.gateway_config(),
        simulation_webhook_secret=settings.SIMULATION_WEBHOOK_SECRET,
    )


def get_current_donor(x_donor_id: Optional[str] = Header(None)) -> str:
    """Donor identity, asserted by the authentication layer in front of this service."""
    if not x_donor_id or not x_donor_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return x_donor_id.strip()
