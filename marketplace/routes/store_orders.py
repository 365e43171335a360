# -------- SELLER ORDERS --------
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session
from marketplace.database import get_session
from marketplace.dependencies.admin import require_seller_or_admin
from marketplace.models.user import User
from marketplace.schemas.orders_schemas import OrderStatusUpdate
from marketplace.services import order_service
from marketplace.utils.serializers import order_dict


router = APIRouter()


@router.get("")
def list_store_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = Query(None),
    session: Session = Depends(get_session),
    seller: User = Depends(require_seller_or_admin)
):
    result = order_service.list_store_orders(
        session, seller, status=status, page=page, limit=limit
    )
    result["results"] = [order_dict(o) for o in result["results"]]
    return result


@router.put("/{order_id}/status")
def update_store_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    session: Session = Depends(get_session),
    seller: User = Depends(require_seller_or_admin)
):
    order = order_service.change_order_status(session, seller, order_id, data.status, data.note)
    return {
        "message": "Order status updated",
        "order_id": order.id,
        "status": order.status,
    }
