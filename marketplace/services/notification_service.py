from datetime import datetime
from typing import Optional

from sqlmodel import Session, select, or_, func
from sqlalchemy import delete, update

from marketplace.errors import InvalidStateError, NotFoundError
from marketplace.models.notifications import Notification, RecipientRole
from marketplace.models.user import User
from marketplace.notifications.events import NotificationEvent
from marketplace.utils.pagination import paginate


def create_notification(
    *,
    session: Session,
    type: str,
    title: str,
    message: str,
    user_id: Optional[int] = None,
    target_role: Optional[RecipientRole] = None,
    order_id: Optional[int] = None,
    payment_id: Optional[int] = None,
    data: Optional[dict] = None,
) -> Notification:
    if (user_id is None) == (target_role is None):
        raise ValueError("A notification targets either a user or a role")

    notification = Notification(
        user_id=user_id,
        target_role=target_role.value if target_role else None,
        type=type,
        title=title,
        message=message,
        order_id=order_id,
        payment_id=payment_id,
        data=data,
        is_read=False,
        created_at=datetime.utcnow(),
    )
    session.add(notification)
    session.flush()
    return notification


def _visible_to(user: User):
    return or_(
        Notification.user_id == user.id,
        Notification.target_role == user.role,
    )


def list_notifications(
    session: Session,
    user: User,
    *,
    page: int = 1,
    limit: int = 20,
    unread_only: bool = False,
) -> dict:
    query = select(Notification).where(_visible_to(user))
    if unread_only:
        query = query.where(Notification.is_read == False)  # noqa: E712

    result = paginate(
        session=session,
        query=query.order_by(Notification.created_at.desc(), Notification.id.desc()),
        page=page,
        limit=limit,
    )

    result["unread_count"] = session.exec(
        select(func.count()).select_from(Notification).where(
            _visible_to(user),
            Notification.is_read == False,  # noqa: E712
        )
    ).one()
    return result


def mark_as_read(session: Session, user: User, notification_id: int) -> Notification:
    notification = session.get(Notification, notification_id)

    if not notification or not (
        notification.user_id == user.id or notification.target_role == user.role
    ):
        raise NotFoundError("Notification not found")

    # one row is shared by every member of the role
    if notification.user_id is None:
        raise InvalidStateError(
            "Role notifications clear when the item is handled",
            reason="shared_notification",
        )

    if not notification.is_read:
        notification.is_read = True
        session.add(notification)
        session.commit()
        session.refresh(notification)

    return notification


def mark_all_as_read(session: Session, user: User) -> int:
    """Only the user's own notifications; role-wide ones stay as they are."""
    result = session.execute(
        update(Notification)
        .where(Notification.user_id == user.id, Notification.is_read == False)  # noqa: E712
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    session.commit()
    return result.rowcount


def list_pending_approvals(session: Session, *, page: int = 1, limit: int = 20) -> dict:
    query = (
        select(Notification)
        .where(
            Notification.target_role == RecipientRole.admin.value,
            Notification.type == NotificationEvent.PAYMENT_PENDING.value,
        )
        .order_by(Notification.created_at.desc())
    )
    return paginate(session=session, query=query, page=page, limit=limit)


def remove_pending_approval(session: Session, payment_id: int) -> int:
    """Drops the admin review notification for a payment. Does not commit."""
    result = session.execute(
        delete(Notification).where(
            Notification.payment_id == payment_id,
            Notification.type == NotificationEvent.PAYMENT_PENDING.value,
        )
    )
    return result.rowcount
