"""
Transaction record store.

All writes to a donation after creation go through `transition_to_terminal`,
a single conditional UPDATE guarded by `state = 'pending'`. Whichever caller
(client verification, status poll, webhook) gets there first wins; every
later caller sees `applied=False` and the already-terminal record.
"""
import logging
import secrets
import string
import time
from typing import Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import models
from app.errors import DuplicateOrderId

logger = logging.getLogger(__name__)

RECEIPT_ALPHABET = string.digits + string.ascii_uppercase

# Fields each terminal state may write, besides the ones the store owns
TERMINAL_FIELDS = {
    models.SUCCESS: {"gateway_payment_id", "verification_token"},
    models.FAILED: {"failure_reason"},
}


def generate_receipt_id() -> str:
    token = "".join(secrets.choice(RECEIPT_ALPHABET) for _ in range(9))
    return f"RCP-{int(time.time() * 1000)}-{token}"


class TransactionStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, record: models.Donation) -> models.Donation:
        if self.find_by_gateway_order_id(record.gateway_order_id) is not None:
            logger.error(f"Duplicate gateway order id {record.gateway_order_id}")
            raise DuplicateOrderId(f"Gateway order {record.gateway_order_id} already recorded")

        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"Duplicate gateway order id {record.gateway_order_id}: {e}")
            raise DuplicateOrderId(f"Gateway order {record.gateway_order_id} already recorded") from e
        self.db.refresh(record)
        return record

    def find_by_id(self, record_id: str) -> Optional[models.Donation]:
        return self.db.query(models.Donation).filter(
            models.Donation.id == record_id
        ).first()

    def find_by_gateway_order_id(self, gateway_order_id: str) -> Optional[models.Donation]:
        return self.db.query(models.Donation).filter(
            models.Donation.gateway_order_id == gateway_order_id
        ).first()

    def find_by_id_and_owner(self, record_id: str, owner_id: str) -> Optional[models.Donation]:
        return self.db.query(models.Donation).filter(
            models.Donation.id == record_id,
            models.Donation.owner_id == owner_id,
        ).first()

    def transition_to_terminal(
        self, record_id: str, target_state: str, **fields
    ) -> Tuple[Optional[models.Donation], bool]:
        """
        Move a pending record to `target_state` in one atomic write.

        Returns (record, applied). `applied` is False when the record was
        already terminal (or does not exist); nothing is written in that case.
        """
        allowed = TERMINAL_FIELDS.get(target_state)
        if allowed is None:
            raise ValueError(f"{target_state!r} is not a terminal state")
        unexpected = set(fields) - allowed
        if unexpected:
            raise ValueError(f"Fields {sorted(unexpected)} cannot be set on {target_state}")

        values = dict(fields, state=target_state, completed_at=models.utcnow())
        if target_state == models.SUCCESS:
            values["receipt_id"] = generate_receipt_id()

        stmt = (
            update(models.Donation)
            .where(
                models.Donation.id == record_id,
                models.Donation.state == models.PENDING,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        applied = result.rowcount == 1

        record = self.find_by_id(record_id)
        if record is not None:
            # the UPDATE bypassed the identity map
            self.db.refresh(record)

        if applied:
            logger.info(f"Donation {record_id} resolved to {target_state}")
        else:
            logger.info(
                f"Donation {record_id} not moved to {target_state}: "
                f"already {record.state if record else 'missing'}"
            )
        return record, applied
