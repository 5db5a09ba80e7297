"""
Normalizes heterogeneous gateway responses to the adapter result types.

Razorpay and Cashfree use different field names, status vocabularies and
webhook envelopes. This module maps all of them to OrderHandle, OrderStatus
and WebhookEvent so the verification flow never sees a wire format.
"""
from typing import Any, Dict, List, Optional

from app.errors import GatewayUnavailable, WebhookPayloadError
from app.gateways.base import OrderHandle, OrderStatus, WebhookEvent


# Order-level status vocabulary
PAID_ORDER_STATES = {
    "razorpay": {"paid"},
    "cashfree": {"PAID"},
    "simulated": {"paid"},
}

# Orders in these states can no longer be paid
CLOSED_ORDER_STATES = {
    "razorpay": set(),
    "cashfree": {"EXPIRED", "TERMINATED", "TERMINATION_REQUESTED"},
    "simulated": {"expired"},
}

ORDER_STATUS_FIELD_MAP = {
    "razorpay": "status",
    "cashfree": "order_status",
    "simulated": "status",
}

# Payment-attempt level
SUCCESSFUL_PAYMENT_STATES = {
    "razorpay": {"captured"},
    "cashfree": {"SUCCESS"},
    "simulated": {"captured"},
}

PAYMENT_FIELD_MAP = {
    # provider: (id, status, method, reference)
    "razorpay": ("id", "status", "method", "acquirer_data"),
    "cashfree": ("cf_payment_id", "payment_status", "payment_group", "bank_reference"),
    "simulated": ("id", "status", "method", "reference"),
}

SUCCESS_EVENTS = {
    "razorpay": {"payment.captured", "order.paid"},
    "cashfree": {"PAYMENT_SUCCESS_WEBHOOK"},
    "simulated": {"payment.succeeded"},
}

# Generic {eventType, payload} envelopes use this vocabulary on every gateway
GENERIC_SUCCESS_EVENTS = {"payment.succeeded", "payment.captured", "order.paid"}


def _require_provider(provider_name: str) -> None:
    if provider_name not in ORDER_STATUS_FIELD_MAP:
        raise ValueError(f"Unknown gateway: {provider_name}")


def _as_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def normalize_order(provider_name: str, raw: Dict[str, Any]) -> OrderHandle:
    """
    Maps an order-creation response to an OrderHandle.

    A response without an order id is a provider fault, not a partial success.
    """
    _require_provider(provider_name)

    if provider_name == "cashfree":
        order_id = _as_str(raw.get("order_id"))
        session_token = _as_str(raw.get("payment_session_id"))
        if not session_token:
            raise GatewayUnavailable("cashfree: order response missing payment_session_id")
    else:
        order_id = _as_str(raw.get("id"))
        session_token = _as_str(raw.get("session_token"))

    if not order_id:
        raise GatewayUnavailable(f"{provider_name}: order response missing order id")

    return OrderHandle(gateway_order_id=order_id, session_token=session_token)


def _payment_items(provider_name: str, raw_payments: Any) -> List[Dict[str, Any]]:
    # Razorpay wraps the list in a collection object
    if provider_name == "razorpay" and isinstance(raw_payments, dict):
        return list(raw_payments.get("items") or [])
    if isinstance(raw_payments, list):
        return raw_payments
    return []


def _reference(provider_name: str, payment: Dict[str, Any]) -> Optional[str]:
    field = PAYMENT_FIELD_MAP[provider_name][3]
    value = payment.get(field)
    if provider_name == "razorpay" and isinstance(value, dict):
        # acquirer_data holds rrn / bank_transaction_id / upi_transaction_id
        for key in ("rrn", "bank_transaction_id", "upi_transaction_id", "auth_code"):
            if value.get(key):
                return str(value[key])
        return None
    return _as_str(value)


def normalize_status(
    provider_name: str,
    raw_order: Dict[str, Any],
    raw_payments: Any = None,
) -> OrderStatus:
    """
    Maps an order lookup (plus its payment attempts) to an OrderStatus.

    An order counts as paid when the order status says so or when any payment
    attempt reached the provider's successful state.
    """
    _require_provider(provider_name)

    order_state = raw_order.get(ORDER_STATUS_FIELD_MAP[provider_name], "")
    id_field, status_field, method_field, _ = PAYMENT_FIELD_MAP[provider_name]

    successful = [
        p for p in _payment_items(provider_name, raw_payments)
        if p.get(status_field) in SUCCESSFUL_PAYMENT_STATES[provider_name]
    ]
    paid = order_state in PAID_ORDER_STATES[provider_name] or bool(successful)

    if not paid:
        return OrderStatus(
            paid=False,
            closed=order_state in CLOSED_ORDER_STATES[provider_name],
        )

    payment = successful[0] if successful else {}
    return OrderStatus(
        paid=True,
        payment_id=_as_str(payment.get(id_field)),
        payment_method=_as_str(payment.get(method_field)),
        reference=_reference(provider_name, payment) if payment else None,
    )


def _section(container: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = container.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise WebhookPayloadError(f"Webhook field '{key}' must be an object")
    return value


def _event_type(body: Dict[str, Any], key: str) -> str:
    value = body.get(key) or ""
    if not isinstance(value, str):
        raise WebhookPayloadError(f"Webhook field '{key}' must be a string")
    return value


def _generic_event(provider_name: str, body: Dict[str, Any]) -> WebhookEvent:
    event_type = _event_type(body, "eventType")
    payload = _section(body, "payload")
    order_id = payload.get("orderId") or payload.get("gatewayOrderId")
    return WebhookEvent(
        event_type=event_type,
        gateway_order_id=_as_str(order_id),
        payment_id=_as_str(payload.get("paymentId") or payload.get("gatewayPaymentId")),
        succeeded=event_type in GENERIC_SUCCESS_EVENTS
        or event_type in SUCCESS_EVENTS[provider_name],
    )


def _razorpay_event(body: Dict[str, Any]) -> WebhookEvent:
    event_type = _event_type(body, "event")
    payload = _section(body, "payload")
    payment = _section(_section(payload, "payment"), "entity")
    order = _section(_section(payload, "order"), "entity")
    return WebhookEvent(
        event_type=event_type,
        gateway_order_id=_as_str(payment.get("order_id") or order.get("id")),
        payment_id=_as_str(payment.get("id")),
        succeeded=event_type in SUCCESS_EVENTS["razorpay"],
    )


def _cashfree_event(body: Dict[str, Any]) -> WebhookEvent:
    event_type = _event_type(body, "type")
    data = _section(body, "data")
    order = _section(data, "order")
    payment = _section(data, "payment")
    succeeded = (
        event_type in SUCCESS_EVENTS["cashfree"]
        and payment.get("payment_status", "SUCCESS") == "SUCCESS"
    )
    return WebhookEvent(
        event_type=event_type,
        gateway_order_id=_as_str(order.get("order_id")),
        payment_id=_as_str(payment.get("cf_payment_id")),
        succeeded=succeeded,
    )


WEBHOOK_PARSERS = {
    "razorpay": _razorpay_event,
    "cashfree": _cashfree_event,
}


def normalize_webhook(provider_name: str, body: Dict[str, Any]) -> WebhookEvent:
    """
    Maps a webhook body to a WebhookEvent.

    Accepts the generic `{eventType, payload}` envelope on every gateway and
    the provider's native envelope otherwise.
    Raises WebhookPayloadError when a known section is not an object.
    """
    _require_provider(provider_name)
    if "eventType" in body:
        return _generic_event(provider_name, body)
    parser = WEBHOOK_PARSERS.get(provider_name)
    if parser is None:
        return WebhookEvent(event_type="", gateway_order_id=None, payment_id=None, succeeded=False)
    return parser(body)
