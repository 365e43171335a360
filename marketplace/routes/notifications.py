from fastapi import APIRouter, Depends, Query
from sqlmodel import Session
from marketplace.database import get_session
from marketplace.dependencies.admin import require_admin
from marketplace.models.user import User
from marketplace.services import notification_service
from marketplace.utils.serializers import notification_dict
from marketplace.utils.token import get_current_user

router = APIRouter()


@router.get("")
def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    result = notification_service.list_notifications(
        session, current_user, page=page, limit=limit, unread_only=unread_only
    )
    result["results"] = [notification_dict(n) for n in result["results"]]
    return result


@router.get("/admin/pending")
def pending_approvals(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin)
):
    result = notification_service.list_pending_approvals(session, page=page, limit=limit)
    result["results"] = [notification_dict(n) for n in result["results"]]
    return result


@router.put("/read-all")
def mark_all_read(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    updated = notification_service.mark_all_as_read(session, current_user)
    return {"message": "All notifications marked as read", "updated": updated}


@router.put("/{notification_id}/read")
def mark_read(
    notification_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    notification = notification_service.mark_as_read(session, current_user, notification_id)
    return notification_dict(notification)
