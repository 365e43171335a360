from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session
from marketplace.database import get_session
from marketplace.dependencies.admin import require_admin
from marketplace.models.user import User
from marketplace.schemas.payment_schemas import PaymentRejectRequest
from marketplace.services import payment_service
from marketplace.utils.serializers import payment_dict

router = APIRouter()


@router.get("")
def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = Query(None),
    method: Optional[str] = Query(None),
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin)
):
    result = payment_service.list_payments(
        session, status=status, method=method, page=page, limit=limit
    )
    result["results"] = [payment_dict(p) for p in result["results"]]
    return result


@router.get("/{payment_id}")
def payment_details(
    payment_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin)
):
    return payment_dict(payment_service.get_payment_for(session, admin, payment_id))


@router.post("/{payment_id}/approve")
def approve_payment(
    payment_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin)
):
    payment = payment_service.approve_payment(session, admin, payment_id)
    return {"message": "Payment approved", "payment": payment_dict(payment)}


@router.post("/{payment_id}/reject")
def reject_payment(
    payment_id: int,
    data: PaymentRejectRequest,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin)
):
    payment = payment_service.reject_payment(session, admin, payment_id, data.reason)
    return {"message": "Payment rejected", "payment": payment_dict(payment)}
