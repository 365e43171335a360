# marketplace/services/payment_service.py
"""
Payment Workflow.

    qr_code:          pending --slip--> completed
                      pending --slip--> waiting_approval --approve--> completed
                                                         --reject---> failed
    cash/credit_card: completed on creation
    webhook:          pending | waiting_approval --> completed | failed

A payment holds its order's single payment slot (``active_order_id``) until
it fails. Status moves are compare-and-set on the current status, and the
order follows through ``PAYMENT_TRANSITIONS`` in the same transaction.
Notifications go out after commit.
"""
import logging
import secrets
import time
from datetime import datetime, timedelta
from decimal import Decimal
from typing import BinaryIO, Callable, List, Optional

from sqlmodel import Session, select
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from marketplace.config import settings
from marketplace.constants.order_status import (
    PAYABLE_STATUSES,
    PAYMENT_TRANSITIONS,
    OrderStatus,
)
from marketplace.constants.payment_status import (
    ACTIVE_STATUSES,
    ALLOWED_TRANSITIONS,
    IMMEDIATE_SETTLEMENT,
    PaymentMethod,
    PaymentStatus,
)
from marketplace.errors import (
    ConflictError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from marketplace.models.notifications import RecipientRole
from marketplace.models.order import Order
from marketplace.models.payment import Payment
from marketplace.models.user import User
from marketplace.notifications.dispatcher import notify
from marketplace.notifications.events import NotificationEvent
from marketplace.services.notification_service import remove_pending_approval
from marketplace.services.order_event_service import log_order_event
from marketplace.services.order_service import notify_order_status, transition_order
from marketplace.services.slip_storage import discard_slip, save_slip
from marketplace.utils.pagination import paginate

logger = logging.getLogger(__name__)

PROMPTPAY_PREFIX = (
    "00020101021229370016A000000677010111011300661234567890123450208"
    "PROMPTPAY5802TH530376463"
)

PROMPTPAY_INSTRUCTIONS = [
    "Open your banking app",
    "Choose Scan QR",
    "Scan this QR code",
    "Check the amount and confirm",
    "Upload the transfer slip",
]


def new_transaction_id() -> str:
    return f"TXN_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


def promptpay_payload(amount: Decimal) -> str:
    """Mock PromptPay string; the amount is zero-padded to ten characters."""
    amount_field = f"{Decimal(amount):.2f}".zfill(10)
    return f"{PROMPTPAY_PREFIX}{amount_field}6304"


def parse_method(value) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError:
        raise InvalidArgumentError(f"Unsupported payment method: {value}")


def parse_status(value) -> PaymentStatus:
    try:
        return PaymentStatus(value)
    except ValueError:
        raise InvalidArgumentError(f"Unknown payment status: {value}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load_payment(session: Session, payment_id: int, user: Optional[User] = None) -> Payment:
    payment = session.get(Payment, payment_id, populate_existing=True)

    if not payment:
        raise NotFoundError("Payment not found")
    if user is not None and payment.user_id != user.id and user.role != "admin":
        raise NotFoundError("Payment not found")

    return payment


def _load_order(session: Session, order_id: int) -> Order:
    order = session.get(Order, order_id, populate_existing=True)
    if not order:
        raise NotFoundError("Order not found")
    return order


def _active_payment(session: Session, order_id: int) -> Optional[Payment]:
    return session.exec(
        select(Payment).where(
            Payment.order_id == order_id,
            Payment.status.in_([s.value for s in ACTIVE_STATUSES]),
        )
    ).first()


def _move_payment(
    session: Session,
    payment: Payment,
    new_status: PaymentStatus,
    **values,
) -> PaymentStatus:
    """Compare-and-set the payment status. Does not commit."""
    current = PaymentStatus(payment.status)

    if new_status not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStateError(
            f"Cannot move payment from {current.value} to {new_status.value}",
            reason="invalid_transition",
        )

    if new_status == PaymentStatus.FAILED:
        values["active_order_id"] = None

    result = session.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == current.value)
        .values(status=new_status.value, updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidStateError(
            "Payment status changed concurrently",
            reason="invalid_transition",
        )

    logger.info(f"Payment {payment.id}: {current.value} -> {new_status.value}")
    return current


def _notify_buyer(session: Session, payment: Payment, event: NotificationEvent, title: str, message: str, **data):
    return notify(
        session,
        event=event,
        title=title,
        message=message,
        user_id=payment.user_id,
        order_id=payment.order_id,
        payment_id=payment.id,
        data={
            "payment_id": payment.id,
            "order_id": payment.order_id,
            "status": payment.status,
            "amount": payment.amount,
            **data,
        },
    )


def _after_commit(session: Session, payment: Payment, order: Order, previous_order_status: str):
    session.refresh(payment)
    session.refresh(order)
    if order.status != previous_order_status:
        notify_order_status(session, order, previous_order_status)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

def create_payment(
    session: Session,
    user: User,
    order_id: int,
    method,
    *,
    customer: Optional[dict] = None,
    shipping_fee: Decimal = Decimal("0"),
) -> Payment:
    method = parse_method(method)
    shipping_fee = Decimal(shipping_fee or 0)
    if shipping_fee < 0:
        raise InvalidArgumentError("Shipping fee must not be negative")

    order = _load_order(session, order_id)
    if order.user_id != user.id:
        raise NotFoundError("Order not found")

    if OrderStatus(order.status) not in PAYABLE_STATUSES:
        raise InvalidStateError(
            f"Order in status {order.status} does not accept payments",
            reason="order_not_payable",
        )

    existing = _active_payment(session, order.id)
    if existing:
        raise ConflictError(
            "Order already has an active payment",
            reason="payment_exists",
            extra={"payment_id": existing.id},
        )

    customer = customer or {}
    address = customer.get("address") or user.address
    phone = customer.get("phone") or user.phone
    amount = order.total + shipping_fee
    immediate = method in IMMEDIATE_SETTLEMENT
    previous = order.status

    try:
        payment = Payment(
            order_id=order.id,
            user_id=user.id,
            active_order_id=order.id,
            transaction_id=new_transaction_id(),
            amount=amount,
            currency=settings.currency,
            method=method.value,
            status=(PaymentStatus.COMPLETED if immediate else PaymentStatus.PENDING).value,
            qr_code_data=None if immediate else promptpay_payload(amount),
            customer_name=customer.get("name") or user.name,
            customer_email=customer.get("email") or user.email,
            customer_phone=phone,
            customer_address=address,
            meta={
                "order_items": len(order.items),
                "payment_method": method.value,
                "shipping_fee": str(shipping_fee),
            },
        )
        session.add(payment)
        session.flush()

        if address:
            order.shipping_address = address
        if phone:
            order.shipping_phone = phone
        session.add(order)

        log_order_event(
            session,
            order_id=order.id,
            event_type="payment_created",
            label=f"Payment created ({method.value})",
            actor_id=user.id,
            actor_role=user.role,
            payment_id=payment.id,
            meta={"amount": str(amount), "status": payment.status},
        )

        transition_order(
            session,
            order,
            OrderStatus.PROCESSING if immediate else OrderStatus.NOT_PROCESS,
            table=PAYMENT_TRANSITIONS,
            actor_id=user.id,
            actor_role=user.role,
        )

        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictError("Order already has an active payment", reason="payment_exists")
    except Exception:
        session.rollback()
        raise

    _after_commit(session, payment, order, previous)

    if immediate:
        _notify_buyer(
            session, payment, NotificationEvent.PAYMENT_COMPLETED,
            "Payment completed",
            f"Payment for order #{order.id} completed",
        )
    else:
        _notify_buyer(
            session, payment, NotificationEvent.PAYMENT_CREATED,
            "Payment created",
            f"Scan the QR code and upload your slip to pay for order #{order.id}",
        )

    return payment


# ---------------------------------------------------------------------------
# QR / slip path
# ---------------------------------------------------------------------------

def promptpay_qr(session: Session, user: User, payment_id: int) -> dict:
    payment = _load_payment(session, payment_id, user)

    if payment.method != PaymentMethod.QR_CODE.value:
        raise InvalidStateError("Payment is not a QR code payment", reason="not_qr_payment")
    if payment.status != PaymentStatus.PENDING.value:
        raise InvalidStateError(
            f"Payment is already {payment.status}",
            reason="invalid_transition",
        )

    return {
        "payment_id": payment.id,
        "amount": payment.amount,
        "currency": payment.currency,
        "transaction_id": payment.transaction_id,
        "qr_string": payment.qr_code_data or promptpay_payload(payment.amount),
        "expires_at": datetime.utcnow() + timedelta(minutes=settings.qr_expiry_minutes),
        "instructions": PROMPTPAY_INSTRUCTIONS,
    }


def upload_slip(
    session: Session,
    user: User,
    payment_id: int,
    fileobj: BinaryIO,
    filename: Optional[str],
    content_type: Optional[str],
    storage: Callable[..., str] = save_slip,
    discard: Callable[[str], None] = discard_slip,
) -> Payment:
    """
    Attach a transfer slip to a pending qr_code payment.

    Completes the payment (order -> Processing), or parks it in
    ``waiting_approval`` for an admin when ``slip_review_required`` is set.
    The file is stored only once the status move succeeded, and removed
    again if the transaction does not commit.
    """
    payment = _load_payment(session, payment_id, user)

    if payment.method != PaymentMethod.QR_CODE.value:
        raise InvalidStateError("Slips are only accepted for QR code payments", reason="not_qr_payment")
    if payment.status != PaymentStatus.PENDING.value:
        raise InvalidStateError(
            f"Slip upload is not allowed for a {payment.status} payment",
            reason="invalid_transition",
        )

    order = _load_order(session, payment.order_id)
    if OrderStatus(order.status) not in PAYABLE_STATUSES:
        raise InvalidStateError(
            f"Order in status {order.status} does not accept payments",
            reason="order_not_payable",
        )

    review = settings.slip_review_required
    target = PaymentStatus.WAITING_APPROVAL if review else PaymentStatus.COMPLETED
    previous = order.status
    slip_url = None

    try:
        _move_payment(session, payment, target)

        slip_url = storage(payment.id, fileobj, filename, content_type)
        session.execute(
            update(Payment)
            .where(Payment.id == payment.id)
            .values(slip_url=slip_url)
            .execution_options(synchronize_session=False)
        )

        log_order_event(
            session,
            order_id=order.id,
            event_type="slip_uploaded",
            label="Payment slip uploaded",
            actor_id=user.id,
            actor_role=user.role,
            payment_id=payment.id,
            meta={"slip_url": slip_url, "status": target.value},
        )

        if not review:
            transition_order(
                session,
                order,
                OrderStatus.PROCESSING,
                table=PAYMENT_TRANSITIONS,
                actor_id=user.id,
                actor_role=user.role,
            )

        session.commit()
    except Exception:
        session.rollback()
        if slip_url:
            discard(slip_url)
        raise

    _after_commit(session, payment, order, previous)

    if review:
        notify(
            session,
            event=NotificationEvent.PAYMENT_PENDING,
            title="Payment awaiting approval",
            message=f"Order #{order.id}: slip uploaded for {payment.amount} {payment.currency}",
            role=RecipientRole.admin,
            order_id=order.id,
            payment_id=payment.id,
            data={
                "payment_id": payment.id,
                "order_id": order.id,
                "amount": payment.amount,
                "slip_url": slip_url,
                "customer_name": payment.customer_name,
            },
        )
    else:
        _notify_buyer(
            session, payment, NotificationEvent.PAYMENT_COMPLETED,
            "Payment completed",
            f"Slip received, payment for order #{order.id} completed",
            slip_url=slip_url,
        )

    return payment


# ---------------------------------------------------------------------------
# Admin review
# ---------------------------------------------------------------------------

def approve_payment(session: Session, admin: User, payment_id: int) -> Payment:
    payment = _load_payment(session, payment_id)

    if payment.status != PaymentStatus.WAITING_APPROVAL.value:
        raise InvalidStateError(
            f"Only payments waiting for approval can be approved (status: {payment.status})",
            reason="invalid_transition",
        )

    order = _load_order(session, payment.order_id)
    previous = order.status

    try:
        _move_payment(
            session, payment, PaymentStatus.COMPLETED,
            approved_by=admin.id, approved_at=datetime.utcnow(),
        )
        remove_pending_approval(session, payment.id)

        log_order_event(
            session,
            order_id=order.id,
            event_type="payment_approved",
            label="Payment approved",
            actor_id=admin.id,
            actor_role=admin.role,
            payment_id=payment.id,
        )

        transition_order(
            session,
            order,
            OrderStatus.PROCESSING,
            table=PAYMENT_TRANSITIONS,
            actor_id=admin.id,
            actor_role=admin.role,
        )

        session.commit()
    except Exception:
        session.rollback()
        raise

    _after_commit(session, payment, order, previous)
    _notify_buyer(
        session, payment, NotificationEvent.PAYMENT_APPROVED,
        "Payment approved",
        f"Your payment for order #{order.id} was approved",
    )
    return payment


def reject_payment(session: Session, admin: User, payment_id: int, reason: str) -> Payment:
    reason = (reason or "").strip()
    if not reason:
        raise InvalidArgumentError("A rejection reason is required")

    payment = _load_payment(session, payment_id)

    if payment.status != PaymentStatus.WAITING_APPROVAL.value:
        raise InvalidStateError(
            f"Only payments waiting for approval can be rejected (status: {payment.status})",
            reason="invalid_transition",
        )

    order = _load_order(session, payment.order_id)
    previous = order.status

    try:
        _move_payment(
            session, payment, PaymentStatus.FAILED,
            rejected_by=admin.id, rejected_at=datetime.utcnow(), rejection_reason=reason,
        )
        remove_pending_approval(session, payment.id)

        log_order_event(
            session,
            order_id=order.id,
            event_type="payment_rejected",
            label="Payment rejected",
            actor_id=admin.id,
            actor_role=admin.role,
            payment_id=payment.id,
            meta={"reason": reason},
        )

        # buyer may pay again
        transition_order(
            session,
            order,
            OrderStatus.NOT_PROCESS,
            table=PAYMENT_TRANSITIONS,
            actor_id=admin.id,
            actor_role=admin.role,
            note=reason,
        )

        session.commit()
    except Exception:
        session.rollback()
        raise

    _after_commit(session, payment, order, previous)
    _notify_buyer(
        session, payment, NotificationEvent.PAYMENT_REJECTED,
        "Payment rejected",
        f"Your payment for order #{order.id} was rejected: {reason}",
        reason=reason,
    )
    return payment


# ---------------------------------------------------------------------------
# Simulated gateway
# ---------------------------------------------------------------------------

def handle_webhook(
    session: Session,
    transaction_id: str,
    status,
    gateway_id: Optional[str] = None,
) -> Payment:
    target = parse_status(status)
    if target not in (PaymentStatus.COMPLETED, PaymentStatus.FAILED):
        raise InvalidArgumentError("Webhook status must be completed or failed")

    payment = session.exec(
        select(Payment)
        .where(Payment.transaction_id == transaction_id)
        .execution_options(populate_existing=True)
    ).first()
    if not payment:
        raise NotFoundError("Payment not found")

    if payment.status == target.value:
        logger.info(f"Webhook replay for payment {payment.id} ({target.value}) ignored")
        return payment

    order = _load_order(session, payment.order_id)
    previous = order.status

    try:
        was = _move_payment(session, payment, target, gateway_id=gateway_id)
        if was == PaymentStatus.WAITING_APPROVAL:
            remove_pending_approval(session, payment.id)

        log_order_event(
            session,
            order_id=order.id,
            event_type=f"payment_{target.value}",
            label=f"Gateway reported payment {target.value}",
            payment_id=payment.id,
            meta={"gateway_id": gateway_id},
        )

        transition_order(
            session,
            order,
            OrderStatus.PROCESSING if target == PaymentStatus.COMPLETED else OrderStatus.PAYMENT_FAILED,
            table=PAYMENT_TRANSITIONS,
        )

        session.commit()
    except Exception:
        session.rollback()
        raise

    _after_commit(session, payment, order, previous)

    if target == PaymentStatus.COMPLETED:
        _notify_buyer(
            session, payment, NotificationEvent.PAYMENT_COMPLETED,
            "Payment completed",
            f"Payment for order #{order.id} completed",
        )
    else:
        _notify_buyer(
            session, payment, NotificationEvent.PAYMENT_FAILED,
            "Payment failed",
            f"Payment for order #{order.id} failed, please try again",
        )

    return payment


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_payment_for(session: Session, user: User, payment_id: int) -> Payment:
    return _load_payment(session, payment_id, user)


def list_user_payments(session: Session, user: User) -> List[Payment]:
    return session.exec(
        select(Payment)
        .where(Payment.user_id == user.id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
    ).all()


def list_payments(
    session: Session,
    *,
    status: Optional[str] = None,
    method: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    query = select(Payment)

    if status and status.lower() != "all":
        query = query.where(Payment.status == parse_status(status.lower()).value)
    if method and method.lower() != "all":
        query = query.where(Payment.method == parse_method(method.lower()).value)

    return paginate(
        session=session,
        query=query.order_by(Payment.created_at.desc(), Payment.id.desc()),
        page=page,
        limit=limit,
    )
