from enum import Enum


class PaymentMethod(str, Enum):
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    QR_CODE = "qr_code"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    WAITING_APPROVAL = "waiting_approval"
    COMPLETED = "completed"
    FAILED = "failed"


ALLOWED_TRANSITIONS = {
    PaymentStatus.PENDING: [PaymentStatus.COMPLETED, PaymentStatus.WAITING_APPROVAL, PaymentStatus.FAILED],
    PaymentStatus.WAITING_APPROVAL: [PaymentStatus.COMPLETED, PaymentStatus.FAILED],
    PaymentStatus.COMPLETED: [],
    PaymentStatus.FAILED: [],
}

# statuses that hold the order's single payment slot
ACTIVE_STATUSES = {
    PaymentStatus.PENDING,
    PaymentStatus.WAITING_APPROVAL,
    PaymentStatus.COMPLETED,
}

IMMEDIATE_SETTLEMENT = {PaymentMethod.CASH, PaymentMethod.CREDIT_CARD}
