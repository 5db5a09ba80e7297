from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Numeric, String
from datetime import datetime, timezone
from app.database import Base
import uuid


PENDING = "pending"
SUCCESS = "success"
FAILED = "failed"

TERMINAL_STATES = (SUCCESS, FAILED)


def generate_id():
    return f"don_{uuid.uuid4().hex[:16]}"


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Donation(Base):
    __tablename__ = "donations"
    __table_args__ = (
        CheckConstraint("amount >= 1", name="ck_donations_min_amount"),
        CheckConstraint("state IN ('pending', 'success', 'failed')", name="ck_donations_state"),
    )

    id = Column(String, primary_key=True, default=generate_id)
    owner_id = Column(String, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    state = Column(String, nullable=False, default=PENDING, index=True)
    gateway = Column(String, nullable=False)
    simulated = Column(Boolean, nullable=False, default=False)
    gateway_order_id = Column(String, nullable=False, unique=True)
    gateway_payment_id = Column(String, nullable=True)
    verification_token = Column(String, nullable=True)  # signature or gateway reference
    failure_reason = Column(String, nullable=True)
    receipt_id = Column(String, nullable=True, unique=True)
    notes = Column(String, nullable=False, default="")
    attempted_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def __repr__(self):
        return f"<Donation(id={self.id}, state={self.state}, order={self.gateway_order_id})>"
