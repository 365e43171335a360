from fastapi import APIRouter, Depends
from sqlmodel import Session
from marketplace.database import get_session
from marketplace.models.user import User
from marketplace.services import order_service
from marketplace.services.order_event_service import list_order_events
from marketplace.utils.serializers import event_dict, order_dict
from marketplace.utils.token import get_current_user

router = APIRouter()


# Order history

@router.get("")
def my_orders(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    orders = order_service.list_user_orders(session, current_user.id)
    return {
        "orders": [
            order_dict(o, order_service.payments_for_order(session, o.id))
            for o in orders
        ]
    }


@router.get("/{order_id}")
def order_detail(
    order_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    order = order_service.get_order_for(session, current_user, order_id)
    return order_dict(order, order_service.payments_for_order(session, order.id))


# Timeline

@router.get("/{order_id}/timeline")
def order_timeline(
    order_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    order = order_service.get_order_for(session, current_user, order_id)
    return {
        "order_id": order.id,
        "status": order.status,
        "events": [event_dict(e) for e in list_order_events(session, order.id)],
    }
