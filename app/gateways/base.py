import hashlib
import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

import httpx

from app.config import GatewayConfig
from app.errors import GatewayUnavailable


SIGNATURE = "signature"
STATUS_POLL = "status_poll"
SIMULATED = "simulated"


@dataclass(frozen=True)
class OrderHandle:
    """Result of creating an order with the gateway."""

    gateway_order_id: str
    session_token: Optional[str]
    simulated: bool = False


@dataclass(frozen=True)
class OrderStatus:
    """Server-side view of an order, as reported by the gateway.

    `closed` means the order can no longer be paid (expired or terminated).
    """

    paid: bool
    closed: bool = False
    payment_id: Optional[str] = None
    payment_method: Optional[str] = None
    reference: Optional[str] = None


@dataclass(frozen=True)
class WebhookEvent:
    event_type: str
    gateway_order_id: Optional[str]
    payment_id: Optional[str]
    succeeded: bool


class BaseGateway(ABC):
    """Abstract base for all payment gateway adapters."""

    verification_mode: str = SIGNATURE
    simulated: bool = False

    def __init__(self, config: GatewayConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def create_order(
        self, amount: Decimal, currency: str, metadata: Dict[str, Any]
    ) -> OrderHandle:
        """
        Create an order for `amount` major currency units.

        metadata carries `receipt` (our record id), `owner_id` and `notes`.
        Raises GatewayUnavailable on any transport or provider error.
        """
        pass

    @abstractmethod
    async def fetch_order_status(self, gateway_order_id: str) -> OrderStatus:
        pass

    @abstractmethod
    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        pass

    @abstractmethod
    def parse_webhook_event(self, body: Dict[str, Any]) -> WebhookEvent:
        pass

    @abstractmethod
    def webhook_signature(self, headers: Mapping[str, str]) -> Optional[str]:
        pass

    def verify_signature(
        self,
        gateway_order_id: Optional[str],
        gateway_payment_id: Optional[str],
        signature: Optional[str],
        secret: Optional[str] = None,
    ) -> bool:
        """HMAC-SHA256 over `order_id|payment_id`. Pure, no network."""
        secret = secret or self.config.key_secret
        if not (gateway_order_id and gateway_payment_id and signature and secret):
            return False
        expected = hmac_hex(secret, f"{gateway_order_id}|{gateway_payment_id}".encode())
        return signatures_match(expected, signature)

    def _client(self, **kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            transport=self._transport,
            **kwargs,
        )

    async def _request(self, client: httpx.AsyncClient, method: str, url: str, **kwargs) -> Any:
        """Send one request; any transport fault or non-2xx becomes GatewayUnavailable."""
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise GatewayUnavailable(f"{self.provider_name}: timeout on {method} {url}") from e
        except httpx.HTTPError as e:
            raise GatewayUnavailable(f"{self.provider_name}: {e.__class__.__name__} on {method} {url}") from e

        if response.status_code >= 400:
            raise GatewayUnavailable(
                f"{self.provider_name}: {response.status_code} on {method} {url}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise GatewayUnavailable(f"{self.provider_name}: non-JSON response on {method} {url}") from e


def hmac_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def signatures_match(expected: str, received: str) -> bool:
    # compare_digest rejects non-ASCII str; caller-supplied values may be anything
    return hmac.compare_digest(expected.encode(), received.encode("utf-8", "surrogateescape"))
