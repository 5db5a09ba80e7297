from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Mapping, Optional

from app.gateways.base import (
    BaseGateway, OrderHandle, OrderStatus, SIGNATURE, WebhookEvent, hmac_hex, signatures_match
)
from app.services.normalizer import normalize_order, normalize_status, normalize_webhook


SIGNATURE_HEADER = "x-razorpay-signature"


def to_paise(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class RazorpayGateway(BaseGateway):
    """
    Razorpay Orders API.
    Verification: client relays `razorpay_signature`, checked with HMAC against the key secret.
    Amounts: integer paise
    Order status: created / attempted / paid
    Webhook signature: hex HMAC-SHA256 of the raw body, `X-Razorpay-Signature`
    """

    verification_mode = SIGNATURE

    @property
    def provider_name(self) -> str:
        return "razorpay"

    async def create_order(
        self, amount: Decimal, currency: str, metadata: Dict[str, Any]
    ) -> OrderHandle:
        body = {
            "amount": to_paise(amount),
            "currency": currency,
            "receipt": metadata.get("receipt"),
            "notes": {
                "ownerId": metadata.get("owner_id"),
                "purpose": "Donation",
                "notes": (metadata.get("notes") or "")[:250],
            },
        }
        async with self._client(auth=(self.config.key_id, self.config.key_secret)) as client:
            raw = await self._request(client, "POST", "/v1/orders", json=body)

        handle = normalize_order(self.provider_name, raw)
        # Checkout is opened with the public key id and the order id
        return OrderHandle(gateway_order_id=handle.gateway_order_id, session_token=self.config.key_id)

    async def fetch_order_status(self, gateway_order_id: str) -> OrderStatus:
        async with self._client(auth=(self.config.key_id, self.config.key_secret)) as client:
            raw_order = await self._request(client, "GET", f"/v1/orders/{gateway_order_id}")
            raw_payments = await self._request(client, "GET", f"/v1/orders/{gateway_order_id}/payments")
        return normalize_status(self.provider_name, raw_order, raw_payments)

    def webhook_signature(self, headers: Mapping[str, str]) -> Optional[str]:
        return headers.get(SIGNATURE_HEADER)

    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        signature = self.webhook_signature(headers)
        secret = self.config.webhook_secret
        if not signature or not secret:
            return False
        return signatures_match(hmac_hex(secret, raw_body), signature)

    def parse_webhook_event(self, body: Dict[str, Any]) -> WebhookEvent:
        return normalize_webhook(self.provider_name, body)
