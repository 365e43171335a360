# marketplace/services/coupon_service.py
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional
import logging

from sqlmodel import Session, select
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from marketplace.config import settings
from marketplace.errors import CouponRejectedError, InvalidArgumentError
from marketplace.models.coupon import Coupon

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

WELCOME = "welcome"

# rejection reasons, in the order the checks run
NOT_FOUND = "not_found"
NOT_OWNER = "not_owner"
ALREADY_USED = "already_used"
EXPIRED = "expired"
BELOW_MINIMUM = "below_minimum"


@dataclass
class CouponValidation:
    valid: bool
    discount: Decimal = ZERO
    reason: Optional[str] = None
    coupon: Optional[Coupon] = None


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def _money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_discount(coupon: Coupon, cart_total: Decimal) -> Decimal:
    """
    Flat amount when set, otherwise a percentage of the cart capped at
    ``max_discount``. Never more than the cart total, never negative.
    """
    cart_total = _money(cart_total)

    if coupon.discount_amount:
        discount = Decimal(coupon.discount_amount)
    elif coupon.discount_percent:
        discount = cart_total * Decimal(coupon.discount_percent) / 100
        if coupon.max_discount is not None:
            discount = min(discount, Decimal(coupon.max_discount))
    else:
        discount = ZERO

    discount = min(_money(discount), cart_total)
    return max(discount, ZERO)


def get_coupon(session: Session, *, code: Optional[str] = None, coupon_id: Optional[int] = None) -> Optional[Coupon]:
    if coupon_id is not None:
        return session.get(Coupon, coupon_id)
    return session.exec(select(Coupon).where(Coupon.code == normalize_code(code))).first()


def validate(
    session: Session,
    user_id: int,
    cart_total: Decimal,
    *,
    code: Optional[str] = None,
    coupon_id: Optional[int] = None,
) -> CouponValidation:
    """Run the checks in order; the first failing one is the reason."""
    if coupon_id is None and not normalize_code(code):
        raise InvalidArgumentError("Coupon code is required")

    coupon = get_coupon(session, code=code, coupon_id=coupon_id)

    if not coupon:
        return CouponValidation(valid=False, reason=NOT_FOUND)

    if coupon.user_id != user_id:
        return CouponValidation(valid=False, reason=NOT_OWNER)

    if coupon.is_used:
        return CouponValidation(valid=False, reason=ALREADY_USED, coupon=coupon)

    if coupon.expires_at and coupon.expires_at < datetime.utcnow():
        return CouponValidation(valid=False, reason=EXPIRED, coupon=coupon)

    if cart_total < (coupon.min_purchase or ZERO):
        return CouponValidation(valid=False, reason=BELOW_MINIMUM, coupon=coupon)

    return CouponValidation(
        valid=True,
        discount=compute_discount(coupon, cart_total),
        coupon=coupon,
    )


def consume(session: Session, coupon_id: int, order_id: int, discount_amount: Decimal) -> None:
    """
    Single-use compare-and-set on ``is_used``. Only called from inside the
    checkout transaction; does not commit.
    """
    result = session.execute(
        update(Coupon)
        .where(Coupon.id == coupon_id, Coupon.is_used == False)  # noqa: E712
        .values(is_used=True, used_at=datetime.utcnow(), order_id=order_id)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        raise CouponRejectedError(ALREADY_USED)

    logger.info(f"Coupon {coupon_id} consumed by order {order_id} (discount {discount_amount})")


def _active_welcome_coupon(session: Session, user_id: int) -> Optional[Coupon]:
    now = datetime.utcnow()
    return session.exec(
        select(Coupon).where(
            Coupon.user_id == user_id,
            Coupon.kind == WELCOME,
            Coupon.is_used == False,  # noqa: E712
            (Coupon.expires_at == None) | (Coupon.expires_at > now),  # noqa: E711
        )
    ).first()


def issue_welcome_coupon(session: Session, user_id: int) -> Coupon:
    """
    Idempotent: returns the user's active welcome coupon, or creates one.

    The code is derived from how many welcome coupons the user already had,
    so two concurrent issues collide on the unique code and the loser
    returns the winner's coupon.
    """
    existing = _active_welcome_coupon(session, user_id)
    if existing:
        return existing

    issued = session.exec(
        select(func.count()).select_from(Coupon).where(
            Coupon.user_id == user_id, Coupon.kind == WELCOME
        )
    ).one()

    coupon = Coupon(
        code=f"WELCOME{user_id}-{issued + 1}",
        user_id=user_id,
        kind=WELCOME,
        discount_amount=settings.welcome_coupon_amount,
        min_purchase=ZERO,
        expires_at=datetime.utcnow() + timedelta(hours=settings.welcome_coupon_ttl_hours),
    )
    session.add(coupon)

    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        existing = _active_welcome_coupon(session, user_id)
        if existing:
            return existing
        raise

    session.refresh(coupon)
    logger.info(f"Issued welcome coupon {coupon.code} to user {user_id}")
    return coupon


def list_user_coupons(session: Session, user_id: int, auto_issue: bool = True) -> List[Coupon]:
    """A user without any coupon receives the welcome coupon first."""
    if auto_issue:
        has_any = session.exec(
            select(Coupon.id).where(Coupon.user_id == user_id)
        ).first()
        if has_any is None:
            issue_welcome_coupon(session, user_id)

    return session.exec(
        select(Coupon)
        .where(Coupon.user_id == user_id)
        .order_by(Coupon.created_at.desc())
    ).all()
