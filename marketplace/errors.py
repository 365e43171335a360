"""Error taxonomy for the order-fulfillment engine.

Services raise these; ``marketplace.main`` renders them as JSON responses
with the carried ``status_code`` and ``code``.
"""
from typing import Any, Dict, Optional


class MarketplaceError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str, *, reason: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.extra = extra or {}

    def as_dict(self) -> Dict[str, Any]:
        body = {"detail": self.message, "code": self.code}
        if self.reason:
            body["reason"] = self.reason
        if self.extra:
            body.update(self.extra)
        return body


class NotFoundError(MarketplaceError):
    status_code = 404
    code = "not_found"


class InvalidArgumentError(MarketplaceError):
    status_code = 422
    code = "invalid_argument"


class ConflictError(MarketplaceError):
    status_code = 409
    code = "conflict"


class InvalidStateError(MarketplaceError):
    status_code = 409
    code = "invalid_state"


class PermissionDeniedError(MarketplaceError):
    status_code = 403
    code = "forbidden"


class EmptyCartError(InvalidStateError):
    code = "cart_empty"

    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message, reason="cart_empty")


class CouponRejectedError(InvalidArgumentError):
    code = "coupon_invalid"

    def __init__(self, reason: str, message: Optional[str] = None):
        super().__init__(message or f"Coupon rejected: {reason}", reason=reason)


class InsufficientStockError(ConflictError):
    code = "stock_unavailable"

    def __init__(self, product_id: int, requested: int, available: Optional[int]):
        super().__init__(
            f"Insufficient stock for product {product_id}",
            reason="stock_unavailable",
            extra={
                "product_id": product_id,
                "requested": requested,
                "available": available,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available
