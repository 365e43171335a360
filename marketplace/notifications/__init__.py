from .events import NotificationEvent
from .dispatcher import DeliveryOutcome, notify

__all__ = [
    "NotificationEvent",
    "DeliveryOutcome",
    "notify",
]
