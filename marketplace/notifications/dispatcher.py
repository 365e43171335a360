import logging
from enum import Enum
from typing import Optional

from fastapi.encoders import jsonable_encoder
from sqlmodel import Session

from marketplace.models.notifications import RecipientRole
from marketplace.notifications.channels import Channel, LiveEvent
from marketplace.notifications.events import NotificationEvent
from marketplace.notifications.live import registry
from marketplace.notifications.rules import LIVE_EVENT_NAMES, NOTIFICATION_RULES
from marketplace.services.notification_service import create_notification

logger = logging.getLogger(__name__)


class DeliveryOutcome(str, Enum):
    DELIVERED_LIVE = "delivered_live"      # stored and pushed to a live connection
    QUEUED_FOR_LATER = "queued_for_later"  # stored, nobody listening
    NONE = "none"                          # could not be stored


def notify(
    session: Session,
    *,
    event: NotificationEvent,
    title: str,
    message: str,
    user_id: Optional[int] = None,
    role: Optional[RecipientRole] = None,
    order_id: Optional[int] = None,
    payment_id: Optional[int] = None,
    data: Optional[dict] = None,
) -> DeliveryOutcome:
    """
    Central notification dispatcher.

    Persists a Notification for a user or a role and pushes it to any live
    connection. Must be called after the business transaction committed.
    Never raises: failures are logged and reported through the outcome.
    """
    rules = NOTIFICATION_RULES.get(event, {})
    payload = jsonable_encoder(data or {})

    # -------------------------
    # STORED NOTIFICATION
    # -------------------------
    try:
        notification = create_notification(
            session=session,
            type=event.value,
            title=title,
            message=message,
            user_id=user_id,
            target_role=role,
            order_id=order_id,
            payment_id=payment_id,
            data=payload,
        )
        session.commit()
        session.refresh(notification)
    except Exception:
        logger.exception(f"Failed to store {event.value} notification")
        session.rollback()
        return DeliveryOutcome.NONE

    if not rules.get(Channel.LIVE_PUSH):
        return DeliveryOutcome.QUEUED_FOR_LATER

    # -------------------------
    # LIVE PUSH
    # -------------------------
    live_event = LIVE_EVENT_NAMES.get(event, LiveEvent.NOTIFICATION)
    message_body = {
        "event": live_event.value,
        "notification_id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "order_id": notification.order_id,
        "payment_id": notification.payment_id,
        "data": payload,
        "created_at": notification.created_at.isoformat(),
    }

    try:
        if user_id is not None:
            pushed = registry.send_to_user(user_id, message_body)
        else:
            pushed = registry.send_to_role(role.value, message_body)
    except Exception:
        logger.exception(f"Live push of notification {notification.id} failed")
        pushed = 0

    outcome = DeliveryOutcome.DELIVERED_LIVE if pushed else DeliveryOutcome.QUEUED_FOR_LATER
    logger.info(f"Notification {notification.id} ({event.value}): {outcome.value}")
    return outcome
