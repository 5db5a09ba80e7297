from decimal import Decimal
from pydantic import BaseModel, Field, validator
from pydantic.alias_generators import to_camel
from typing import Literal, Optional


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class CreateOrderRequest(CamelModel):
    # range is checked by the service so a bad amount maps to InvalidAmount / 400
    amount: Decimal
    notes: Optional[str] = Field(None, max_length=500)


class VerifyPaymentRequest(CamelModel):
    record_id: str
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    signature: Optional[str] = None
    # honoured only while the service runs in simulation mode
    simulated_outcome: Optional[Literal["success", "failure"]] = None


class PaymentFailedRequest(CamelModel):
    record_id: str
    gateway_order_id: str
    reason: Optional[str] = None

    @validator("reason")
    def trim_reason(cls, v):
        if v is None:
            return v
        v = v.strip()
        if len(v) > 500:
            v = v[:500]
        return v or None
