# -------- ADMIN ORDERS --------
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session
from marketplace.database import get_session
from marketplace.dependencies.admin import require_admin
from marketplace.models.user import User
from marketplace.schemas.orders_schemas import OrderStatusUpdate
from marketplace.services import order_service
from marketplace.utils.serializers import order_dict


router = APIRouter()


@router.get("")
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = Query(None),
    session: Session = Depends(get_session),
    _: User = Depends(require_admin)
):
    result = order_service.list_orders(session, status=status, page=page, limit=limit)
    result["results"] = [order_dict(o) for o in result["results"]]
    return result


@router.get("/{order_id}")
def get_order(
    order_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin)
):
    order = order_service.get_order_for(session, admin, order_id)
    return order_dict(order, order_service.payments_for_order(session, order.id))


@router.put("/{order_id}/status")
def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin)
):
    order = order_service.change_order_status(session, admin, order_id, data.status, data.note)
    return {
        "message": "Order status updated",
        "order_id": order.id,
        "status": order.status,
    }
