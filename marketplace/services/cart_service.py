# marketplace/services/cart_service.py
"""
Cart Store.

One cart per user, created lazily. The running ``total`` is maintained
incrementally: each mutation applies its delta in the same UPDATE that bumps
``Cart.version``, and that UPDATE only matches when the version is the one
the mutation was planned against. A concurrent writer makes the guard miss,
the transaction is rolled back and the mutation is re-planned from fresh
state, up to ``settings.cart_mutation_retries`` times.
"""
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, Tuple
import logging

from sqlmodel import Session, select
from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError

from marketplace.config import settings
from marketplace.errors import ConflictError, InvalidArgumentError, NotFoundError
from marketplace.models.cart import Cart, CartItem
from marketplace.models.product import Product

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

# (total delta, reset total to zero, line writes to run once the version is held)
Plan = Tuple[Decimal, bool, Callable[[], None]]


def get_cart(session: Session, user_id: int, for_update: bool = False) -> Optional[Cart]:
    query = select(Cart).where(Cart.user_id == user_id)
    if for_update:
        query = query.with_for_update()
    return session.exec(query).first()


def get_or_create_cart(session: Session, user_id: int) -> Cart:
    cart = get_cart(session, user_id)
    if cart:
        return cart

    cart = Cart(user_id=user_id, total=ZERO, version=0)
    session.add(cart)
    try:
        session.commit()
    except IntegrityError:
        # another request created it first
        session.rollback()
        return get_cart(session, user_id)

    session.refresh(cart)
    return cart


def compute_cart_total(cart: Cart) -> Decimal:
    return sum((line.line_total for line in cart.items), ZERO)


def _same_variants(a: Optional[dict], b: Optional[dict]) -> bool:
    return (a or {}) == (b or {})


def _find_line(cart: Cart, line_id: int) -> CartItem:
    for line in cart.items:
        if line.id == line_id:
            return line
    raise NotFoundError(f"Cart line {line_id} not found")


def _bump_version(
    session: Session,
    cart_id: int,
    seen_version: int,
    *,
    delta: Decimal = ZERO,
    reset: bool = False,
) -> bool:
    result = session.execute(
        update(Cart)
        .where(Cart.id == cart_id, Cart.version == seen_version)
        .values(
            total=ZERO if reset else Cart.total + delta,
            version=Cart.version + 1,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _mutate(session: Session, user_id: int, plan: Callable[[Cart], Plan]) -> Cart:
    attempts = max(1, settings.cart_mutation_retries)

    for attempt in range(1, attempts + 1):
        session.expire_all()
        cart = get_or_create_cart(session, user_id)

        # may raise NotFoundError before anything is written
        delta, reset, apply = plan(cart)

        if not _bump_version(session, cart.id, cart.version, delta=delta, reset=reset):
            session.rollback()
            logger.info(f"Cart {cart.id} changed concurrently (attempt {attempt}/{attempts})")
            continue

        try:
            apply()
            session.commit()
        except Exception:
            session.rollback()
            raise

        session.refresh(cart)
        return cart

    raise ConflictError("Cart was modified concurrently, please retry")


def add_line(
    session: Session,
    user_id: int,
    product: Product,
    quantity: int,
    price: Optional[Decimal] = None,
    selected_variants: Optional[dict] = None,
) -> Cart:
    """
    Add ``quantity`` of ``product`` at ``price`` (defaults to the catalog
    price). A line with the same product and variant selection is merged
    and keeps its original price snapshot.
    """
    if quantity is None or quantity < 1:
        raise InvalidArgumentError("Quantity must be at least 1")

    unit_price = Decimal(price if price is not None else product.price)
    if unit_price < 0:
        raise InvalidArgumentError("Price must not be negative")

    variants = selected_variants or None

    def plan(cart: Cart) -> Plan:
        existing = next(
            (
                line for line in cart.items
                if line.product_id == product.id
                and _same_variants(line.selected_variants, variants)
            ),
            None,
        )

        if existing:
            def apply():
                existing.quantity += quantity
                session.add(existing)

            return existing.price * quantity, False, apply

        def apply():
            session.add(CartItem(
                cart_id=cart.id,
                product_id=product.id,
                quantity=quantity,
                price=unit_price,
                selected_variants=variants,
            ))

        return unit_price * quantity, False, apply

    cart = _mutate(session, user_id, plan)
    logger.info(f"Added {quantity} x product {product.id} to cart {cart.id}")
    return cart


def set_quantity(session: Session, user_id: int, line_id: int, quantity: int) -> Cart:
    if quantity is None or quantity < 0:
        raise InvalidArgumentError("Quantity must not be negative")

    if quantity == 0:
        return remove_line(session, user_id, line_id)

    def plan(cart: Cart) -> Plan:
        line = _find_line(cart, line_id)

        def apply():
            line.quantity = quantity
            session.add(line)

        return line.price * (quantity - line.quantity), False, apply

    return _mutate(session, user_id, plan)


def remove_line(session: Session, user_id: int, line_id: int) -> Cart:
    def plan(cart: Cart) -> Plan:
        line = _find_line(cart, line_id)

        def apply():
            session.delete(line)

        return -line.line_total, False, apply

    return _mutate(session, user_id, plan)


def clear(session: Session, user_id: int) -> Cart:
    def plan(cart: Cart) -> Plan:
        def apply():
            session.execute(delete(CartItem).where(CartItem.cart_id == cart.id))

        return ZERO, True, apply

    return _mutate(session, user_id, plan)


# ---------------------------------------------------------------------------
# Used by the checkout transaction; neither commits.
# ---------------------------------------------------------------------------

def claim_for_checkout(session: Session, cart: Cart) -> bool:
    """Take the cart's write slot at the version the checkout was planned on."""
    return _bump_version(session, cart.id, cart.version)


def empty_claimed_cart(session: Session, cart_id: int) -> None:
    session.execute(delete(CartItem).where(CartItem.cart_id == cart_id))
    session.execute(
        update(Cart)
        .where(Cart.id == cart_id)
        .values(total=ZERO, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )


def reconcile(session: Session, user_id: int) -> dict:
    session.expire_all()
    cart = get_or_create_cart(session, user_id)
    computed = compute_cart_total(cart)

    if computed != cart.total:
        logger.warning(
            f"Cart {cart.id} total drifted: stored {cart.total}, computed {computed}"
        )

    return {
        "cart_id": cart.id,
        "stored_total": cart.total,
        "computed_total": computed,
        "consistent": computed == cart.total,
    }
