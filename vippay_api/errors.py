"""Error taxonomy for the VIP payment flow.

Callback-path errors never reach the webhook sender (they collapse to the
FAIL token at the boundary). Order creation and query errors are rendered as
RFC 9457 Problem Details with a stable ``error_code``.
"""

from typing import Optional


class VipPayError(Exception):
    """Base exception for payment-flow errors."""

    error_code: str = "INTERNAL_ERROR"
    status_code: int = 500
    title: str = "Internal Server Error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.title
        super().__init__(self.detail)


class SignatureMismatch(VipPayError):
    """Webhook signature does not match the recomputed signature."""

    error_code = "SIGNATURE_MISMATCH"
    status_code = 401
    title = "Signature verification failed"


class MalformedAttachment(VipPayError):
    """Attachment is not valid JSON or is missing required fields."""

    error_code = "MALFORMED_ATTACHMENT"
    status_code = 400
    title = "Malformed attachment"


class OrderNotFound(VipPayError):
    """Order does not exist (or is not visible to the requesting user)."""

    error_code = "ORDER_NOT_FOUND"
    status_code = 404
    title = "Order not found"


class InvalidStateTransition(VipPayError):
    """Order is in a state that cannot move to paid."""

    error_code = "INVALID_STATE_TRANSITION"
    status_code = 409
    title = "Invalid order state transition"

    def __init__(self, current_status: str, detail: Optional[str] = None):
        self.current_status = current_status
        super().__init__(detail or f"Order status is {current_status}, expected pending")


class InvalidProduct(VipPayError):
    """Unknown product type."""

    error_code = "INVALID_PRODUCT"
    status_code = 400
    title = "Invalid product type"


class UpstreamOrderCreationFailed(VipPayError):
    """Payment provider did not confirm order creation."""

    error_code = "UPSTREAM_ORDER_CREATION_FAILED"
    status_code = 502
    title = "Payment order creation failed"


class ConfigurationMissing(VipPayError):
    """Required configuration is absent or still a placeholder."""

    error_code = "CONFIGURATION_MISSING"
    status_code = 503
    title = "Payment service not configured"

    def __init__(self, missing: list[str], detail: Optional[str] = None):
        self.missing = missing
        super().__init__(detail or f"Missing configuration: {', '.join(missing)}")


class StoreUnavailable(VipPayError):
    """Record store read/write failed."""

    error_code = "STORE_UNAVAILABLE"
    status_code = 503
    title = "Record store unavailable"
