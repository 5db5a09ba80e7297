from dataclasses import dataclass
from typing import Optional

from pydantic_settings import BaseSettings


@dataclass(frozen=True)
class GatewayConfig:
    """Credentials and endpoint for one payment gateway, passed to its adapter."""

    provider: str
    key_id: Optional[str]
    key_secret: Optional[str]
    webhook_secret: Optional[str]
    base_url: str
    timeout_seconds: float = 10.0
    api_version: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.key_id and self.key_secret)


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./donations.db"

    # App
    APP_NAME: str = "Donation Payment Service"
    API_PREFIX: str = "/api"
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    # Donations
    DONATION_CURRENCY: str = "INR"
    ORGANIZATION_NAME: str = "NGO Name"

    # Gateway: "razorpay" or "cashfree"
    PAYMENT_GATEWAY: str = "razorpay"
    GATEWAY_TIMEOUT_SECONDS: float = 10.0

    RAZORPAY_KEY_ID: Optional[str] = None
    RAZORPAY_KEY_SECRET: Optional[str] = None
    RAZORPAY_WEBHOOK_SECRET: Optional[str] = None
    RAZORPAY_BASE_URL: str = "https://api.razorpay.com"

    CASHFREE_APP_ID: Optional[str] = None
    CASHFREE_SECRET_KEY: Optional[str] = None
    CASHFREE_BASE_URL: str = "https://sandbox.cashfree.com"
    CASHFREE_API_VERSION: str = "2023-08-01"

    # Signs webhooks accepted while no live credentials are configured
    SIMULATION_WEBHOOK_SECRET: str = "simulation-webhook-secret"

    class Config:
        env_file = ".env"

    def gateway_config(self) -> GatewayConfig:
        provider = self.PAYMENT_GATEWAY.lower()
        if provider == "cashfree":
            return GatewayConfig(
                provider="cashfree",
                key_id=self.CASHFREE_APP_ID,
                key_secret=self.CASHFREE_SECRET_KEY,
                # Cashfree signs webhooks with the client secret
                webhook_secret=self.CASHFREE_SECRET_KEY,
                base_url=self.CASHFREE_BASE_URL,
                timeout_seconds=self.GATEWAY_TIMEOUT_SECONDS,
                api_version=self.CASHFREE_API_VERSION,
            )
        if provider == "razorpay":
            return GatewayConfig(
                provider="razorpay",
                key_id=self.RAZORPAY_KEY_ID,
                key_secret=self.RAZORPAY_KEY_SECRET,
                webhook_secret=self.RAZORPAY_WEBHOOK_SECRET or self.RAZORPAY_KEY_SECRET,
                base_url=self.RAZORPAY_BASE_URL,
                timeout_seconds=self.GATEWAY_TIMEOUT_SECONDS,
            )
        raise ValueError(f"Unknown payment gateway: {self.PAYMENT_GATEWAY}")


settings = Settings()
