# marketplace/services/order_event_service.py
from datetime import datetime
from typing import List, Optional

from sqlmodel import Session, select

from marketplace.models.order_event import OrderEvent


def log_order_event(
    session: Session,
    order_id: int,
    event_type: str,
    label: str,
    actor_id: Optional[int] = None,
    actor_role: str = "system",
    meta: Optional[dict] = None,
    payment_id: Optional[int] = None,
) -> OrderEvent:
    """
    Append an entry to the order timeline.

    Joins the caller's transaction and is never committed here, so the entry
    disappears together with a rolled-back change.
    """
    event = OrderEvent(
        order_id=order_id,
        payment_id=payment_id,
        event_type=event_type,
        label=label,
        meta=meta,
        actor_id=actor_id,
        actor_role=actor_role or "system",
        created_at=datetime.utcnow(),
    )
    session.add(event)
    return event


def list_order_events(
    session: Session,
    order_id: int,
    payment_id: Optional[int] = None,
) -> List[OrderEvent]:
    query = select(OrderEvent).where(OrderEvent.order_id == order_id)
    if payment_id is not None:
        query = query.where(OrderEvent.payment_id == payment_id)

    return session.exec(query.order_by(OrderEvent.created_at, OrderEvent.id)).all()
