from enum import Enum


class Channel(str, Enum):
    INAPP = "inapp"          # persisted Notification row
    LIVE_PUSH = "live_push"  # websocket push to live connections


class LiveEvent(str, Enum):
    """Event names sent over the websocket."""
    ORDER_STATUS_UPDATED = "order_status_updated"
    PAYMENT_STATUS_UPDATED = "payment_status_updated"
    NOTIFICATION = "notification"
