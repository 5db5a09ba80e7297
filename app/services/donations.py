"""
Donation verification service.

Orchestrates:
1. Validate the amount and create the gateway order
2. Persist a pending donation keyed by the gateway order id
3. Verify the payment (signature, status poll, or simulated outcome)
4. Resolve the donation to success/failed through the store's
   conditional transition, so duplicate callbacks are no-ops
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.orm import Session

from app import models
from app.config import settings
from app.errors import GatewayUnavailable, InvalidAmount, NotFound
from app.gateways.base import BaseGateway, OrderStatus, SIGNATURE
from app.services.store import TransactionStore

logger = logging.getLogger(__name__)


MIN_AMOUNT = Decimal("1")
# largest value the Numeric(12, 2) amount column holds
MAX_AMOUNT = Decimal("9999999999.99")

SIGNATURE_FAILED = "signature verification failed"
PAYMENT_NOT_COMPLETED = "payment declined or not completed"
SIMULATED_FAILURE = "simulated payment failure"
DEFAULT_CANCEL_REASON = "Payment was cancelled or failed"

SIMULATED_OUTCOMES = ("success", "failure")


class PaymentProof:
    """What the client relays after checkout closes."""

    def __init__(
        self,
        gateway_order_id: str,
        gateway_payment_id: Optional[str] = None,
        signature: Optional[str] = None,
        simulated_outcome: Optional[str] = None,
    ):
        self.gateway_order_id = gateway_order_id
        self.gateway_payment_id = gateway_payment_id
        self.signature = signature
        self.simulated_outcome = simulated_outcome


class CreatedDonation:
    def __init__(
        self,
        record_id: str,
        gateway_order_id: str,
        session_token: Optional[str],
        amount: Decimal,
        currency: str,
        gateway: str,
        simulated: bool,
    ):
        self.record_id = record_id
        self.gateway_order_id = gateway_order_id
        self.session_token = session_token
        self.amount = amount
        self.currency = currency
        self.gateway = gateway
        self.simulated = simulated


class PaymentOutcome:
    def __init__(
        self,
        record_id: str,
        state: str,
        receipt_id: Optional[str],
        failure_reason: Optional[str],
        simulated: bool,
        completed_at: Optional[datetime],
    ):
        self.record_id = record_id
        self.state = state
        self.receipt_id = receipt_id
        self.failure_reason = failure_reason
        self.simulated = simulated
        self.completed_at = completed_at

    @classmethod
    def from_record(cls, record: models.Donation) -> "PaymentOutcome":
        return cls(
            record_id=record.id,
            state=record.state,
            receipt_id=record.receipt_id,
            failure_reason=record.failure_reason,
            simulated=bool(record.simulated),
            completed_at=record.completed_at,
        )


class Receipt:
    def __init__(self, record: models.Donation, organization: str):
        self.receipt_id = record.receipt_id
        self.record_id = record.id
        self.donor_id = record.owner_id
        self.amount = record.amount
        self.currency = record.currency
        self.payment_id = record.gateway_payment_id
        self.date = record.completed_at
        self.simulated = bool(record.simulated)
        self.organization = organization
        self.message = "Thank you for your generous donation!"


def validate_amount(amount) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmount("Please enter a valid donation amount")
    if not value.is_finite() or value < MIN_AMOUNT:
        raise InvalidAmount(f"Minimum donation amount is {MIN_AMOUNT}")
    if value > MAX_AMOUNT:
        raise InvalidAmount(f"Maximum donation amount is {MAX_AMOUNT}")
    if value != value.quantize(Decimal("0.01")):
        raise InvalidAmount("Donation amount cannot have more than 2 decimal places")
    return value.quantize(Decimal("0.01"))


def _load_owned(store: TransactionStore, record_id: str, owner_id: str) -> models.Donation:
    record = store.find_by_id_and_owner(record_id, owner_id)
    if record is None:
        raise NotFound(f"Donation {record_id} not found")
    return record


def _resolve_success(store: TransactionStore, record: models.Donation, payment_id, token) -> models.Donation:
    resolved, _ = store.transition_to_terminal(
        record.id,
        models.SUCCESS,
        gateway_payment_id=payment_id,
        verification_token=token,
    )
    return resolved


def _resolve_failure(store: TransactionStore, record: models.Donation, reason: str) -> models.Donation:
    resolved, _ = store.transition_to_terminal(record.id, models.FAILED, failure_reason=reason)
    return resolved


async def create_donation(
    db: Session,
    gateway: BaseGateway,
    owner_id: str,
    amount,
    notes: Optional[str] = None,
) -> CreatedDonation:
    """
    Create a gateway order and record it as a pending donation.

    Raises:
        InvalidAmount: amount outside 1..MAX_AMOUNT or not a money value
        GatewayUnavailable: the order could not be created; nothing is stored
    """
    value = validate_amount(amount)
    currency = settings.DONATION_CURRENCY
    record_id = models.generate_id()

    handle = await gateway.create_order(
        value,
        currency,
        {"receipt": record_id, "owner_id": owner_id, "notes": notes or ""},
    )

    record = models.Donation(
        id=record_id,
        owner_id=owner_id,
        amount=value,
        currency=currency,
        state=models.PENDING,
        gateway=gateway.provider_name,
        simulated=gateway.simulated,
        gateway_order_id=handle.gateway_order_id,
        notes=notes or "",
        attempted_at=models.utcnow(),
    )
    record = TransactionStore(db).create(record)
    logger.info(
        f"Donation {record.id} created: {value} {currency} via {gateway.provider_name} "
        f"order {handle.gateway_order_id}"
    )

    return CreatedDonation(
        record_id=record.id,
        gateway_order_id=handle.gateway_order_id,
        session_token=handle.session_token,
        amount=value,
        currency=currency,
        gateway=gateway.provider_name,
        simulated=gateway.simulated,
    )


async def verify_payment(
    db: Session,
    gateway: BaseGateway,
    record_id: str,
    owner_id: str,
    proof: PaymentProof,
) -> PaymentOutcome:
    """
    Verify a client-reported payment and resolve the donation.

    A terminal donation is returned as-is without verifying again.

    Raises:
        NotFound: no such donation for this owner, or the order id differs
        GatewayUnavailable: status poll failed; the donation stays pending
    """
    store = TransactionStore(db)
    record = _load_owned(store, record_id, owner_id)
    if record.gateway_order_id != proof.gateway_order_id:
        raise NotFound(f"Donation {record_id} not found")

    if record.is_terminal:
        return PaymentOutcome.from_record(record)

    if gateway.simulated:
        outcome = proof.simulated_outcome or "success"
        if outcome not in SIMULATED_OUTCOMES:
            raise ValueError(f"simulated_outcome must be one of {SIMULATED_OUTCOMES}")
        if outcome == "success":
            payment_id = proof.gateway_payment_id or f"pay_sim_{record.id}"
            record = _resolve_success(store, record, payment_id, "simulated")
        else:
            record = _resolve_failure(store, record, SIMULATED_FAILURE)
        return PaymentOutcome.from_record(record)

    if proof.simulated_outcome:
        logger.warning(
            f"Ignoring client-supplied outcome {proof.simulated_outcome!r} for donation "
            f"{record.id}: live {gateway.provider_name} gateway is configured"
        )

    if gateway.verification_mode == SIGNATURE:
        authentic = gateway.verify_signature(
            record.gateway_order_id, proof.gateway_payment_id, proof.signature
        )
        if authentic:
            record = _resolve_success(store, record, proof.gateway_payment_id, proof.signature)
        else:
            logger.warning(f"Signature mismatch for donation {record.id}")
            record = _resolve_failure(store, record, SIGNATURE_FAILED)
        return PaymentOutcome.from_record(record)

    status = await gateway.fetch_order_status(record.gateway_order_id)
    if status.paid:
        record = _resolve_success(store, record, status.payment_id, _poll_token(status))
    else:
        record = _resolve_failure(store, record, PAYMENT_NOT_COMPLETED)
    return PaymentOutcome.from_record(record)


def _poll_token(status: OrderStatus) -> Optional[str]:
    return status.reference or status.payment_id


def report_failure(
    db: Session,
    record_id: str,
    owner_id: str,
    reason: Optional[str] = None,
    gateway_order_id: Optional[str] = None,
) -> PaymentOutcome:
    """Client-side failure (e.g. checkout dismissed). Never produces success."""
    store = TransactionStore(db)
    record = _load_owned(store, record_id, owner_id)
    if gateway_order_id is not None and record.gateway_order_id != gateway_order_id:
        raise NotFound(f"Donation {record_id} not found")

    if not record.is_terminal:
        record = _resolve_failure(store, record, (reason or "").strip() or DEFAULT_CANCEL_REASON)
    return PaymentOutcome.from_record(record)


async def check_status(
    db: Session,
    gateway: BaseGateway,
    record_id: str,
    owner_id: str,
) -> PaymentOutcome:
    """
    Current state of a donation, polling the gateway while it is pending.

    Gateway outages are tolerated: the donation is reported pending.
    """
    store = TransactionStore(db)
    record = _load_owned(store, record_id, owner_id)
    if record.is_terminal:
        return PaymentOutcome.from_record(record)

    try:
        status = await gateway.fetch_order_status(record.gateway_order_id)
    except GatewayUnavailable as e:
        logger.warning(f"Status poll for donation {record.id} failed: {e}")
        return PaymentOutcome.from_record(record)

    if status.paid:
        record = _resolve_success(store, record, status.payment_id, _poll_token(status))
    elif status.closed:
        record = _resolve_failure(store, record, PAYMENT_NOT_COMPLETED)
    return PaymentOutcome.from_record(record)


def get_receipt(db: Session, record_id: str, owner_id: str) -> Receipt:
    record = TransactionStore(db).find_by_id_and_owner(record_id, owner_id)
    if record is None or record.state != models.SUCCESS:
        raise NotFound("Receipt not found or donation not completed")
    return Receipt(record, organization=settings.ORGANIZATION_NAME)
