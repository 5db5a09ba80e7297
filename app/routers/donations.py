import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app import models
from app.database import get_db
from app.dependencies import get_current_donor, get_gateway
from app.errors import GatewayUnavailable, InvalidAmount, NotFound, WebhookPayloadError
from app.gateways.base import BaseGateway
from app.schemas.requests import CreateOrderRequest, PaymentFailedRequest, VerifyPaymentRequest
from app.schemas.responses import (
    CreateOrderResponse,
    DonationHistoryResponse,
    DonationItem,
    DonationStatsResponse,
    PaymentStateResponse,
    ReceiptResponse,
    WebhookAck,
)
from app.services import donations, reporting, webhook

logger = logging.getLogger(__name__)

router = APIRouter()

GATEWAY_ERROR_DETAIL = "Payment gateway unavailable, please retry"


def _state_response(outcome: donations.PaymentOutcome) -> PaymentStateResponse:
    return PaymentStateResponse(
        record_id=outcome.record_id,
        state=outcome.state,
        receipt_id=outcome.receipt_id,
        failure_reason=outcome.failure_reason,
        simulated=outcome.simulated,
        completed_at=outcome.completed_at,
    )


@router.post("/create-order", response_model=CreateOrderResponse)
async def create_order(
    request: CreateOrderRequest,
    db: Session = Depends(get_db),
    gateway: BaseGateway = Depends(get_gateway),
    donor_id: str = Depends(get_current_donor),
):
    """
    Create a gateway order and a pending donation record.

    The response carries what the checkout widget needs (order id and
    session token) plus `simulated`, set when no live gateway is configured.
    """
    try:
        created = await donations.create_donation(
            db, gateway, donor_id, request.amount, request.notes
        )
    except InvalidAmount as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GatewayUnavailable as e:
        logger.error(f"Order creation failed for donor {donor_id}: {e}")
        raise HTTPException(status_code=502, detail=GATEWAY_ERROR_DETAIL)

    return CreateOrderResponse(
        order_id=created.gateway_order_id,
        session_token=created.session_token,
        record_id=created.record_id,
        amount=float(created.amount),
        currency=created.currency,
        gateway=created.gateway,
        simulated=created.simulated,
    )


@router.post("/verify-payment", response_model=PaymentStateResponse)
async def verify_payment(
    request: VerifyPaymentRequest,
    db: Session = Depends(get_db),
    gateway: BaseGateway = Depends(get_gateway),
    donor_id: str = Depends(get_current_donor),
):
    """
    Verify a payment the client reports as completed.

    Returns 400 (with the same body) when verification resolves the donation
    as failed, and 502 when the gateway cannot be polled; the donation then
    stays pending and may be retried.
    """
    proof = donations.PaymentProof(
        gateway_order_id=request.gateway_order_id,
        gateway_payment_id=request.gateway_payment_id,
        signature=request.signature,
        simulated_outcome=request.simulated_outcome,
    )
    try:
        outcome = await donations.verify_payment(db, gateway, request.record_id, donor_id, proof)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except GatewayUnavailable as e:
        logger.error(f"Verification of donation {request.record_id} deferred: {e}")
        raise HTTPException(status_code=502, detail=GATEWAY_ERROR_DETAIL)

    response = _state_response(outcome)
    if outcome.state == models.FAILED:
        return JSONResponse(status_code=400, content=response.model_dump(mode="json", by_alias=True))
    return response


@router.post("/payment-failed", response_model=PaymentStateResponse)
def payment_failed(
    request: PaymentFailedRequest,
    db: Session = Depends(get_db),
    donor_id: str = Depends(get_current_donor),
):
    """Record a failure reported by the checkout widget (cancelled, declined)."""
    try:
        outcome = donations.report_failure(
            db, request.record_id, donor_id, request.reason, request.gateway_order_id
        )
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _state_response(outcome)


@router.get("/check-status/{record_id}", response_model=PaymentStateResponse)
async def check_status(
    record_id: str,
    db: Session = Depends(get_db),
    gateway: BaseGateway = Depends(get_gateway),
    donor_id: str = Depends(get_current_donor),
):
    try:
        outcome = await donations.check_status(db, gateway, record_id, donor_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _state_response(outcome)


@router.post("/webhook", response_model=WebhookAck)
async def gateway_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: BaseGateway = Depends(get_gateway),
):
    """
    Public endpoint for gateway push notifications.

    Always acknowledges with 200 so the gateway does not retry business
    rejections; only an unparseable body gets a 400.
    """
    raw_body = await request.body()
    try:
        outcome = await webhook.handle_webhook(db, gateway, raw_body, request.headers)
    except WebhookPayloadError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info(f"Webhook processed: {outcome}")
    return WebhookAck(received=True)


@router.get("/receipt/{record_id}", response_model=ReceiptResponse)
def get_receipt(
    record_id: str,
    db: Session = Depends(get_db),
    donor_id: str = Depends(get_current_donor),
):
    try:
        receipt = donations.get_receipt(db, record_id, donor_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    return ReceiptResponse(
        receipt_id=receipt.receipt_id,
        record_id=receipt.record_id,
        donor_id=receipt.donor_id,
        amount=float(receipt.amount),
        currency=receipt.currency,
        payment_id=receipt.payment_id,
        date=receipt.date,
        organization=receipt.organization,
        message=receipt.message,
        simulated=receipt.simulated,
    )


@router.get("/history", response_model=DonationHistoryResponse)
def donation_history(
    state: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=reporting.MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    donor_id: str = Depends(get_current_donor),
):
    """The donor's own donations, newest first, with per-state totals."""
    try:
        history = reporting.list_donations(donor_id, db, state=state, page=page, limit=limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return DonationHistoryResponse(
        donations=[
            DonationItem(
                id=d.id,
                amount=float(d.amount),
                currency=d.currency,
                state=d.state,
                gateway=d.gateway,
                simulated=bool(d.simulated),
                gateway_order_id=d.gateway_order_id,
                gateway_payment_id=d.gateway_payment_id,
                failure_reason=d.failure_reason,
                receipt_id=d.receipt_id,
                notes=d.notes or "",
                attempted_at=d.attempted_at,
                completed_at=d.completed_at,
            )
            for d in history.donations
        ],
        total=history.total,
        page=history.page,
        pages=history.pages,
        stats=DonationStatsResponse(
            total=history.stats.total,
            pending=history.stats.pending,
            success=history.stats.success,
            failed=history.stats.failed,
            total_donated=float(history.stats.total_donated),
        ),
    )
