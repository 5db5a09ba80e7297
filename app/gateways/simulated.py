import hashlib
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from app.gateways.base import (
    BaseGateway, OrderHandle, OrderStatus, SIMULATED, WebhookEvent, hmac_hex, signatures_match
)
from app.services.normalizer import normalize_webhook


SIGNATURE_HEADER = "x-webhook-signature"


class SimulatedGateway(BaseGateway):
    """
    Stand-in used while no live gateway credentials are configured.
    Never touches the network. Order ids are derived from the receipt so the
    same request always yields the same handle; every handle is flagged
    `simulated`. Orders are never reported paid by polling: the outcome of
    a simulated payment comes from the caller at verification time.
    """

    verification_mode = SIMULATED
    simulated = True

    @property
    def provider_name(self) -> str:
        return "simulated"

    async def create_order(
        self, amount: Decimal, currency: str, metadata: Dict[str, Any]
    ) -> OrderHandle:
        digest = hashlib.sha256(str(metadata.get("receipt")).encode()).hexdigest()[:14]
        return OrderHandle(
            gateway_order_id=f"order_sim_{digest}",
            session_token=f"sim_session_{digest}",
            simulated=True,
        )

    async def fetch_order_status(self, gateway_order_id: str) -> OrderStatus:
        return OrderStatus(paid=False, closed=False)

    def webhook_signature(self, headers: Mapping[str, str]) -> Optional[str]:
        return headers.get(SIGNATURE_HEADER)

    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        signature = self.webhook_signature(headers)
        if not signature or not self.config.webhook_secret:
            return False
        return signatures_match(hmac_hex(self.config.webhook_secret, raw_body), signature)

    def parse_webhook_event(self, body: Dict[str, Any]) -> WebhookEvent:
        return normalize_webhook(self.provider_name, body)
