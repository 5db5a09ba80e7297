from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class CreateOrderResponse(CamelModel):
    order_id: str
    session_token: Optional[str]
    record_id: str
    amount: float
    currency: str
    gateway: str
    simulated: bool


class PaymentStateResponse(CamelModel):
    record_id: str
    state: str
    receipt_id: Optional[str] = None
    failure_reason: Optional[str] = None
    simulated: bool = False
    completed_at: Optional[datetime] = None


class WebhookAck(CamelModel):
    received: bool = True


class ReceiptResponse(CamelModel):
    receipt_id: str
    record_id: str
    donor_id: str
    amount: float
    currency: str
    payment_id: Optional[str]
    date: Optional[datetime]
    organization: str
    message: str
    simulated: bool = False


class DonationItem(CamelModel):
    id: str
    amount: float
    currency: str
    state: str
    gateway: str
    simulated: bool
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    failure_reason: Optional[str] = None
    receipt_id: Optional[str] = None
    notes: str = ""
    attempted_at: datetime
    completed_at: Optional[datetime] = None


class DonationStatsResponse(CamelModel):
    total: int = 0
    pending: int = 0
    success: int = 0
    failed: int = 0
    total_donated: float = 0.0


class DonationHistoryResponse(CamelModel):
    donations: List[DonationItem]
    total: int
    page: int
    pages: int
    stats: DonationStatsResponse
