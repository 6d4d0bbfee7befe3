"""Domain error taxonomy for the fulfillment saga.

Every error is a ``ValueError`` whose ``str()`` is a short, stable code
(``"ITEM_UNAVAILABLE"``, ``"REFUND_FAILED"``...). Views translate the code
to an HTTP status through ``http_status``; callers that only care about the
code can keep comparing ``str(exc)``.
"""


class SagaError(ValueError):
    """Base class for all domain errors raised by the orders app.

    Attributes:
        code: Stable machine readable error code, also the ``str()`` value.
        http_status: Status code used when the error reaches the API.
        detail: Optional human readable context (never part of ``str()``).
    """

    code = "SAGA_ERROR"
    http_status = 400

    def __init__(self, detail: str | None = None):
        super().__init__(self.code)
        self.detail = detail


class ValidationFailed(SagaError):
    code = "VALIDATION_FAILED"
    http_status = 400


class ProviderMismatch(SagaError):
    """Locker-to-locker request whose two lockers belong to different providers."""

    code = "PROVIDER_MISMATCH"
    http_status = 400


class ItemUnavailable(SagaError):
    code = "ITEM_UNAVAILABLE"
    http_status = 409


class MissingDeliveryInfo(SagaError):
    """The selected pickup/delivery side has no address or locker to use."""

    code = "MISSING_DELIVERY_INFO"
    http_status = 422


class NotFound(SagaError):
    code = "NOT_FOUND"
    http_status = 404


class Forbidden(SagaError):
    code = "FORBIDDEN"
    http_status = 403


class OrderNotCancellable(SagaError):
    code = "ORDER_NOT_CANCELLABLE"
    http_status = 409


class OrderCreationFailed(SagaError):
    code = "ORDER_CREATION_FAILED"
    http_status = 500


class RefundFailed(SagaError):
    """The payment processor did not confirm the refund."""

    code = "REFUND_FAILED"
    http_status = 502


class ShipmentProviderError(SagaError):
    """Courier side failure. Logged and downgraded, never returned to clients."""

    code = "SHIPMENT_PROVIDER_ERROR"
    http_status = 502


class CourierNotConfigured(ShipmentProviderError):
    code = "COURIER_NOT_CONFIGURED"


class InvalidSignature(SagaError):
    code = "INVALID_SIGNATURE"
    http_status = 401


class InvalidOrderState(SagaError):
    """The requested transition is not allowed from the order's current status."""

    code = "INVALID_ORDER_STATE"
    http_status = 409
