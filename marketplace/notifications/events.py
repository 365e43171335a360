from enum import Enum


class NotificationEvent(str, Enum):
    ORDER_PLACED = "order_placed"
    ORDER_STATUS_UPDATED = "order_status_updated"

    PAYMENT_CREATED = "payment_created"
    PAYMENT_COMPLETED = "payment_completed"
    PAYMENT_FAILED = "payment_failed"

    # manual slip review
    PAYMENT_PENDING = "payment_pending"
    PAYMENT_APPROVED = "payment_approved"
    PAYMENT_REJECTED = "payment_rejected"
