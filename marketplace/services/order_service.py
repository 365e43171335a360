# marketplace/services/order_service.py
"""
Order Status Machine.

Two transition tables apply: ``MANUAL_TRANSITIONS`` for seller/admin
actions and ``PAYMENT_TRANSITIONS`` for moves driven by the payment
workflow. Every move is a compare-and-set on the current status and is
recorded in the order timeline inside the caller's transaction.
"""
from datetime import datetime
from typing import Dict, List, Optional
import logging

from sqlmodel import Session, select
from sqlalchemy import update
from sqlalchemy.orm.attributes import set_committed_value

from marketplace.constants.order_status import (
    MANUAL_TRANSITIONS,
    TERMINAL_STATUSES,
    OrderStatus,
)
from marketplace.constants.payment_status import PaymentStatus
from marketplace.errors import (
    ConflictError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
)
from marketplace.models.order import Order
from marketplace.models.order_item import OrderItem
from marketplace.models.payment import Payment
from marketplace.models.store import Store
from marketplace.models.user import User
from marketplace.notifications.dispatcher import notify
from marketplace.notifications.events import NotificationEvent
from marketplace.services.inventory_service import restock_order_items
from marketplace.services.notification_service import remove_pending_approval
from marketplace.services.order_event_service import log_order_event
from marketplace.utils.pagination import paginate

logger = logging.getLogger(__name__)


def parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidArgumentError(f"Unknown order status: {value}")


def transition_order(
    session: Session,
    order: Order,
    new_status: OrderStatus,
    *,
    table: Dict[OrderStatus, List[OrderStatus]],
    actor_id: Optional[int] = None,
    actor_role: str = "system",
    note: Optional[str] = None,
) -> bool:
    """
    Move ``order`` to ``new_status`` if ``table`` allows it.

    Returns False when the order already has that status. Does not commit.
    """
    current = OrderStatus(order.status)

    if current == new_status:
        return False

    if new_status not in table.get(current, []):
        raise InvalidStateError(
            f"Cannot change order status from {current.value} to {new_status.value}",
            reason="invalid_transition",
        )

    now = datetime.utcnow()
    result = session.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == current.value)
        .values(status=new_status.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError("Order status changed concurrently, please retry")

    set_committed_value(order, "status", new_status.value)
    set_committed_value(order, "updated_at", now)

    log_order_event(
        session,
        order_id=order.id,
        event_type="status_changed",
        label=f"{current.value} -> {new_status.value}",
        actor_id=actor_id,
        actor_role=actor_role,
        meta={"from": current.value, "to": new_status.value, "note": note},
    )

    logger.info(f"Order {order.id}: {current.value} -> {new_status.value} by {actor_role}")
    return True


def notify_order_status(session: Session, order: Order, previous: str, note: Optional[str] = None):
    """Tell the buyer about a committed status change."""
    return notify(
        session,
        event=NotificationEvent.ORDER_STATUS_UPDATED,
        title="Order status updated",
        message=f"Order #{order.id} is now {order.status}" + (f": {note}" if note else ""),
        user_id=order.user_id,
        order_id=order.id,
        data={
            "order_id": order.id,
            "status": order.status,
            "previous_status": previous,
            "note": note,
        },
    )


def seller_owns_order(session: Session, seller_id: int, order_id: int) -> bool:
    owned = session.exec(
        select(OrderItem.id)
        .join(Store, Store.id == OrderItem.store_id)
        .where(OrderItem.order_id == order_id, Store.owner_id == seller_id)
    ).first()
    return owned is not None


OPEN_PAYMENT_STATUSES = [PaymentStatus.PENDING.value, PaymentStatus.WAITING_APPROVAL.value]


def _open_payments(session: Session, order_id: int) -> List[Payment]:
    return session.exec(
        select(Payment)
        .where(Payment.order_id == order_id, Payment.status.in_(OPEN_PAYMENT_STATUSES))
        .order_by(Payment.id)
        .execution_options(populate_existing=True)
    ).all()


def _fail_open_payments(
    session: Session,
    order: Order,
    payments: List[Payment],
    reason: str,
    actor: User,
) -> List[int]:
    """
    Fail each payment still awaiting settlement and free the order's payment
    slot. Drops any admin review item for it. Does not commit.
    """
    failed = []
    for payment in payments:
        result = session.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status == payment.status)
            .values(
                status=PaymentStatus.FAILED.value,
                active_order_id=None,
                rejection_reason=reason,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError("Payment status changed concurrently, please retry")

        remove_pending_approval(session, payment.id)

        log_order_event(
            session,
            order_id=order.id,
            event_type="payment_failed",
            label="Payment failed",
            actor_id=actor.id,
            actor_role=actor.role,
            payment_id=payment.id,
            meta={"from": payment.status, "reason": reason},
        )
        logger.info(f"Payment {payment.id}: {payment.status} -> failed ({reason})")
        failed.append(payment.id)

    return failed


def notify_payment_failed(session: Session, payment: Payment, reason: str):
    return notify(
        session,
        event=NotificationEvent.PAYMENT_FAILED,
        title="Payment failed",
        message=f"Your payment for order #{payment.order_id} failed: {reason}",
        user_id=payment.user_id,
        order_id=payment.order_id,
        payment_id=payment.id,
        data={
            "payment_id": payment.id,
            "order_id": payment.order_id,
            "status": payment.status,
            "amount": payment.amount,
            "reason": reason,
        },
    )


def change_order_status(
    session: Session,
    actor: User,
    order_id: int,
    new_status,
    note: Optional[str] = None,
) -> Order:
    """
    Manual transition by an admin or by a seller whose store has a line in
    the order. Cancelling returns the ordered quantities to stock. Any move
    into a terminal status fails the payments still awaiting settlement.
    """
    target = parse_status(new_status)

    order = session.get(Order, order_id, populate_existing=True)
    if not order:
        raise NotFoundError("Order not found")

    if actor.role == "seller":
        if not seller_owns_order(session, actor.id, order.id):
            raise PermissionDeniedError("Order does not contain products from your store")
    elif actor.role != "admin":
        raise PermissionDeniedError("Seller or admin access required")

    previous = order.status
    closing = target in TERMINAL_STATUSES and target.value != previous
    open_payments = _open_payments(session, order.id) if closing else []
    reason = "Order cancelled" if target == OrderStatus.CANCELLED else f"Order marked {target.value}"
    failed_payments = []

    try:
        changed = transition_order(
            session,
            order,
            target,
            table=MANUAL_TRANSITIONS,
            actor_id=actor.id,
            actor_role=actor.role,
            note=note,
        )

        if changed and target == OrderStatus.CANCELLED:
            restock_order_items(session, order.id)

        if changed and closing:
            failed_payments = _fail_open_payments(session, order, open_payments, reason, actor)

        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(order)

    if changed:
        notify_order_status(session, order, previous, note)

    for payment_id in failed_payments:
        payment = session.get(Payment, payment_id, populate_existing=True)
        notify_payment_failed(session, payment, reason)

    return order


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_order_for(session: Session, user: User, order_id: int) -> Order:
    """Buyer sees own orders, admin sees all, seller sees orders with their lines."""
    order = session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")

    if order.user_id == user.id or user.role == "admin":
        return order
    if user.role == "seller" and seller_owns_order(session, user.id, order.id):
        return order

    raise NotFoundError("Order not found")


def list_user_orders(session: Session, user_id: int) -> List[Order]:
    return session.exec(
        select(Order)
        .where(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    ).all()


def payments_for_order(session: Session, order_id: int) -> List[Payment]:
    return session.exec(
        select(Payment)
        .where(Payment.order_id == order_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
    ).all()


def list_orders(
    session: Session,
    *,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    query = select(Order)
    if status and status.lower() != "all":
        query = query.where(Order.status == parse_status(status).value)

    return paginate(
        session=session,
        query=query.order_by(Order.created_at.desc(), Order.id.desc()),
        page=page,
        limit=limit,
    )


def list_store_orders(
    session: Session,
    seller: User,
    *,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    owned_orders = (
        select(OrderItem.order_id)
        .join(Store, Store.id == OrderItem.store_id)
        .where(Store.owner_id == seller.id)
    )
    query = select(Order).where(Order.id.in_(owned_orders))
    if status and status.lower() != "all":
        query = query.where(Order.status == parse_status(status).value)

    return paginate(
        session=session,
        query=query.order_by(Order.created_at.desc(), Order.id.desc()),
        page=page,
        limit=limit,
    )


def is_terminal(order: Order) -> bool:
    return OrderStatus(order.status) in TERMINAL_STATUSES
