# marketplace/services/checkout_service.py
"""
Checkout Transaction: cart + optional coupon -> immutable order.

Everything between claiming the cart and the commit runs in one database
transaction; any failure rolls all of it back, so there is never an order
without its stock decrement, nor a burned coupon without an order.
"""
from decimal import Decimal
from typing import Optional
import logging

from sqlmodel import Session, select

from marketplace.constants.order_status import OrderStatus
from marketplace.errors import ConflictError, CouponRejectedError, EmptyCartError, NotFoundError
from marketplace.models.order import Order
from marketplace.models.order_item import OrderItem
from marketplace.models.product import Product
from marketplace.models.user import User
from marketplace.notifications.dispatcher import notify
from marketplace.notifications.events import NotificationEvent
from marketplace.services import coupon_service, inventory_service
from marketplace.services.cart_service import (
    claim_for_checkout,
    compute_cart_total,
    empty_claimed_cart,
    get_cart,
)
from marketplace.services.order_event_service import log_order_event

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def checkout(
    session: Session,
    user: User,
    *,
    coupon_code: Optional[str] = None,
    coupon_id: Optional[int] = None,
    shipping_address: Optional[str] = None,
    shipping_phone: Optional[str] = None,
) -> Order:
    session.expire_all()

    try:
        cart = get_cart(session, user.id, for_update=True)
        if cart is None or not cart.items:
            raise EmptyCartError()

        lines = list(cart.items)
        subtotal = compute_cart_total(cart)
        if subtotal != cart.total:
            logger.warning(f"Cart {cart.id} stored total {cart.total} != lines {subtotal}")

        # -------------------------
        # COUPON
        # -------------------------
        coupon = None
        discount = ZERO
        if coupon_id is not None or coupon_service.normalize_code(coupon_code):
            check = coupon_service.validate(
                session, user.id, subtotal, code=coupon_code, coupon_id=coupon_id
            )
            if not check.valid:
                raise CouponRejectedError(check.reason)
            coupon, discount = check.coupon, check.discount

        products = {
            p.id: p
            for p in session.exec(
                select(Product).where(Product.id.in_(sorted({line.product_id for line in lines})))
            ).all()
        }
        for line in lines:
            if line.product_id not in products:
                raise NotFoundError(f"Product {line.product_id} not found")

        # -------------------------
        # CLAIM CART
        # -------------------------
        if not claim_for_checkout(session, cart):
            raise ConflictError("Cart changed during checkout, please retry")

        # -------------------------
        # ORDER + LINES
        # -------------------------
        order = Order(
            user_id=user.id,
            subtotal=subtotal,
            discount_amount=discount,
            total=max(subtotal - discount, ZERO),
            coupon_id=coupon.id if coupon else None,
            discount_code=coupon.code if coupon else None,
            status=OrderStatus.NOT_PROCESS.value,
            shipping_address=shipping_address or user.address,
            shipping_phone=shipping_phone or user.phone,
        )
        session.add(order)
        session.flush()

        for line in lines:
            product = products[line.product_id]
            session.add(OrderItem(
                order_id=order.id,
                product_id=product.id,
                store_id=product.store_id,
                product_title=product.title,
                price=line.price,
                quantity=line.quantity,
                selected_variants=line.selected_variants,
            ))

        if coupon:
            coupon_service.consume(session, coupon.id, order.id, discount)

        inventory_service.reserve_stock(
            session, [(line.product_id, line.quantity) for line in lines]
        )

        empty_claimed_cart(session, cart.id)

        log_order_event(
            session,
            order_id=order.id,
            event_type="order_placed",
            label="Order placed",
            actor_id=user.id,
            actor_role=user.role,
            meta={
                "subtotal": str(subtotal),
                "discount": str(discount),
                "coupon_code": coupon.code if coupon else None,
                "lines": len(lines),
            },
        )

        session.commit()
    except Exception as e:
        session.rollback()
        logger.info(f"Checkout for user {user.id} aborted: {e}")
        raise

    session.refresh(order)
    logger.info(f"Order {order.id} placed by user {user.id}, total {order.total}")

    notify(
        session,
        event=NotificationEvent.ORDER_PLACED,
        title="Order placed",
        message=f"Order #{order.id} was placed, total {order.total}",
        user_id=user.id,
        order_id=order.id,
        data={"order_id": order.id, "status": order.status, "total": order.total},
    )

    return order
