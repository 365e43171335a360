# marketplace/services/inventory_service.py
from typing import Iterable, Tuple
from sqlmodel import Session, select
from sqlalchemy import update
from marketplace.errors import InsufficientStockError, NotFoundError
from marketplace.models.order_item import OrderItem
from marketplace.models.product import Product
import logging

logger = logging.getLogger(__name__)


def decrement_stock(session: Session, product_id: int, quantity: int) -> None:
    """
    Guarded decrement: the row only changes when enough stock is left,
    so concurrent checkouts can never drive ``quantity`` below zero.
    Does not commit.
    """
    result = session.execute(
        update(Product)
        .where(Product.id == product_id, Product.quantity >= quantity)
        .values(
            quantity=Product.quantity - quantity,
            sold=Product.sold + quantity,
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 1:
        logger.info(f"Reserved {quantity} of product {product_id}")
        return

    available = session.exec(
        select(Product.quantity).where(Product.id == product_id)
    ).first()

    if available is None:
        raise NotFoundError(f"Product {product_id} not found")

    logger.info(
        f"Stock refused for product {product_id}: requested {quantity}, available {available}"
    )
    raise InsufficientStockError(product_id, quantity, available)


def increment_stock(session: Session, product_id: int, quantity: int) -> None:
    session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(
            quantity=Product.quantity + quantity,
            sold=Product.sold - quantity,
        )
        .execution_options(synchronize_session=False)
    )


def reserve_stock(session: Session, lines: Iterable[Tuple[int, int]]) -> None:
    """
    Decrement stock for every ``(product_id, quantity)`` pair.

    Quantities for the same product are summed and products are visited in
    id order, so two checkouts touching the same products lock rows in the
    same sequence. The first refusal raises and the caller rolls back.
    """
    wanted = {}
    for product_id, quantity in lines:
        wanted[product_id] = wanted.get(product_id, 0) + quantity

    for product_id in sorted(wanted):
        decrement_stock(session, product_id, wanted[product_id])


def restock_order_items(session: Session, order_id: int) -> int:
    """Restock items when an order is cancelled. Does not commit."""
    order_items = session.exec(
        select(OrderItem).where(OrderItem.order_id == order_id)
    ).all()

    for item in sorted(order_items, key=lambda i: i.product_id):
        increment_stock(session, item.product_id, item.quantity)

    logger.info(f"Restocked {len(order_items)} lines for order {order_id}")
    return len(order_items)
