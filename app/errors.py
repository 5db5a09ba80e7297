"""
Error taxonomy for the donation flow.

Client-input and lookup problems subclass ValueError, gateway and store
faults subclass RuntimeError; routers translate them to 4xx and 5xx.
A failed signature or declined payment is not an error: it is recorded
as a `failed` donation and returned as a normal outcome.
"""


class InvalidAmount(ValueError):
    pass


class NotFound(ValueError):
    pass


class WebhookPayloadError(ValueError):
    pass


class GatewayUnavailable(RuntimeError):
    """The gateway could not be reached or gave an unusable answer.

    Callers must treat this as "status unknown", never as a payment failure.
    """

    def __init__(self, message: str = "Payment gateway unavailable, please retry"):
        super().__init__(message)


class DuplicateOrderId(RuntimeError):
    pass
