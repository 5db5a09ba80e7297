"""
Gateway webhook handling.

Webhooks race with client verification and status polls for the same
donation. The handler only ever attempts the pending -> success transition;
the store's conditional update picks the single winner. Webhooks never
create donations and never fail them.
"""
import json
import logging
from typing import Mapping

from sqlalchemy.orm import Session

from app import models
from app.errors import GatewayUnavailable, WebhookPayloadError
from app.gateways.base import BaseGateway, STATUS_POLL
from app.services.store import TransactionStore

logger = logging.getLogger(__name__)


REJECTED = "rejected"
IGNORED = "ignored"
NOT_FOUND = "not_found"
ALREADY_TERMINAL = "already_terminal"
STATUS_UNKNOWN = "status_unknown"
RESOLVED = "resolved"


async def handle_webhook(
    db: Session,
    gateway: BaseGateway,
    raw_body: bytes,
    headers: Mapping[str, str],
) -> str:
    """
    Process one webhook delivery and return what happened to it.

    Raises:
        WebhookPayloadError: the body, or one of its sections, is not a JSON object
    """
    headers = {k.lower(): v for k, v in headers.items()}

    if not gateway.verify_webhook(raw_body, headers):
        logger.warning(f"Rejected {gateway.provider_name} webhook with invalid signature")
        return REJECTED

    try:
        body = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError) as e:
        raise WebhookPayloadError(f"Malformed webhook body: {e}") from e
    if not isinstance(body, dict):
        raise WebhookPayloadError("Webhook body must be a JSON object")

    event = gateway.parse_webhook_event(body)
    if not event.succeeded:
        logger.info(f"Ignoring webhook event {event.event_type!r} for order {event.gateway_order_id}")
        return IGNORED
    if not event.gateway_order_id:
        logger.warning(f"Webhook event {event.event_type!r} carries no order id")
        return IGNORED

    store = TransactionStore(db)
    record = store.find_by_gateway_order_id(event.gateway_order_id)
    if record is None:
        logger.warning(f"Webhook for unknown order {event.gateway_order_id}, ignoring")
        return NOT_FOUND
    if record.is_terminal:
        return ALREADY_TERMINAL

    payment_id = event.payment_id
    if gateway.verification_mode == STATUS_POLL:
        try:
            status = await gateway.fetch_order_status(record.gateway_order_id)
        except GatewayUnavailable as e:
            logger.warning(f"Webhook cross-check for order {record.gateway_order_id} failed: {e}")
            return STATUS_UNKNOWN
        if not status.paid:
            logger.warning(f"Webhook says order {record.gateway_order_id} paid, gateway disagrees")
            return IGNORED
        payment_id = status.payment_id or payment_id

    _, applied = store.transition_to_terminal(
        record.id,
        models.SUCCESS,
        gateway_payment_id=payment_id,
        verification_token=gateway.webhook_signature(headers),
    )
    return RESOLVED if applied else ALREADY_TERMINAL
