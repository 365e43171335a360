from enum import Enum


class OrderStatus(str, Enum):
    NOT_PROCESS = "Not Process"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    RETURN = "Return"
    PAYMENT_FAILED = "Payment Failed"


TERMINAL_STATUSES = {
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.RETURN,
}

# seller / admin actions
MANUAL_TRANSITIONS = {
    OrderStatus.NOT_PROCESS: [OrderStatus.CANCELLED, OrderStatus.RETURN],
    OrderStatus.PROCESSING: [OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.RETURN],
    OrderStatus.SHIPPED: [OrderStatus.DELIVERED, OrderStatus.CANCELLED],
    OrderStatus.PAYMENT_FAILED: [OrderStatus.CANCELLED],
    OrderStatus.DELIVERED: [],
    OrderStatus.CANCELLED: [],
    OrderStatus.RETURN: [],
}

# driven by the payment workflow
PAYMENT_TRANSITIONS = {
    OrderStatus.NOT_PROCESS: [OrderStatus.PROCESSING, OrderStatus.PAYMENT_FAILED],
    OrderStatus.PAYMENT_FAILED: [OrderStatus.PROCESSING, OrderStatus.NOT_PROCESS],
    OrderStatus.PROCESSING: [OrderStatus.NOT_PROCESS],
    OrderStatus.SHIPPED: [],
    OrderStatus.DELIVERED: [],
    OrderStatus.CANCELLED: [],
    OrderStatus.RETURN: [],
}

# a new payment may only be opened while the order awaits settlement
PAYABLE_STATUSES = {OrderStatus.NOT_PROCESS, OrderStatus.PAYMENT_FAILED}
