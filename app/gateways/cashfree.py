import base64
import hashlib
import hmac
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from app.gateways.base import (
    BaseGateway, OrderHandle, OrderStatus, STATUS_POLL, WebhookEvent, signatures_match
)
from app.services.normalizer import normalize_order, normalize_status, normalize_webhook


SIGNATURE_HEADER = "x-webhook-signature"
TIMESTAMP_HEADER = "x-webhook-timestamp"


class CashfreeGateway(BaseGateway):
    """
    Cashfree PG Orders API.
    Verification: server polls the order, client-reported status is never trusted.
    Amounts: decimal rupees
    Order status: ACTIVE / PAID / EXPIRED / TERMINATED / TERMINATION_REQUESTED
    Webhook signature: base64 HMAC-SHA256 of timestamp + raw body, `x-webhook-signature`
    """

    verification_mode = STATUS_POLL

    @property
    def provider_name(self) -> str:
        return "cashfree"

    def _headers(self) -> Dict[str, str]:
        return {
            "x-client-id": self.config.key_id or "",
            "x-client-secret": self.config.key_secret or "",
            "x-api-version": self.config.api_version or "2023-08-01",
        }

    async def create_order(
        self, amount: Decimal, currency: str, metadata: Dict[str, Any]
    ) -> OrderHandle:
        body = {
            "order_id": f"cf_{metadata.get('receipt')}",
            "order_amount": float(amount),
            "order_currency": currency,
            "customer_details": {
                "customer_id": str(metadata.get("owner_id")),
                # Cashfree requires a phone; the donor profile lives outside this service
                "customer_phone": metadata.get("customer_phone") or "9999999999",
            },
            "order_note": (metadata.get("notes") or "Donation")[:200],
            "order_tags": {"receipt": str(metadata.get("receipt"))},
        }
        async with self._client(headers=self._headers()) as client:
            raw = await self._request(client, "POST", "/pg/orders", json=body)
        return normalize_order(self.provider_name, raw)

    async def fetch_order_status(self, gateway_order_id: str) -> OrderStatus:
        async with self._client(headers=self._headers()) as client:
            raw_order = await self._request(client, "GET", f"/pg/orders/{gateway_order_id}")
            raw_payments = await self._request(client, "GET", f"/pg/orders/{gateway_order_id}/payments")
        return normalize_status(self.provider_name, raw_order, raw_payments)

    def webhook_signature(self, headers: Mapping[str, str]) -> Optional[str]:
        return headers.get(SIGNATURE_HEADER)

    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        signature = self.webhook_signature(headers)
        timestamp = headers.get(TIMESTAMP_HEADER)
        secret = self.config.webhook_secret
        if not (signature and timestamp and secret):
            return False
        digest = hmac.new(secret.encode(), timestamp.encode() + raw_body, hashlib.sha256).digest()
        expected = base64.b64encode(digest).decode()
        return signatures_match(expected, signature)

    def parse_webhook_event(self, body: Dict[str, Any]) -> WebhookEvent:
        return normalize_webhook(self.provider_name, body)
