from typing import Optional
from fastapi import APIRouter, Depends, status
from sqlmodel import Session
from marketplace.database import get_session
from marketplace.models.user import User
from marketplace.schemas.checkout_schemas import CheckoutRequest
from marketplace.services.checkout_service import checkout
from marketplace.utils.token import get_current_user

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def place_order(
    data: Optional[CheckoutRequest] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    """
    Turn the caller's cart into an order.

    Failures carry a ``code``: ``cart_empty``, ``coupon_invalid`` (with the
    rejection ``reason``) or ``stock_unavailable`` (with the product).
    """
    data = data or CheckoutRequest()

    order = checkout(
        session,
        current_user,
        coupon_code=data.coupon_code,
        coupon_id=data.coupon_id,
        shipping_address=data.shipping_address,
        shipping_phone=data.shipping_phone,
    )

    return {
        "message": "Order placed successfully",
        "order_id": order.id,
        "status": order.status,
        "subtotal": order.subtotal,
        "discount_amount": order.discount_amount,
        "total": order.total,
    }
