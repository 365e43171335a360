from decimal import Decimal
from pydantic import BaseModel
from typing import Optional


class CustomerInfo(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class PaymentCreateRequest(BaseModel):
    order_id: int
    method: str  # cash | credit_card | qr_code
    customer_info: Optional[CustomerInfo] = None
    shipping_fee: Decimal = Decimal("0")


class PaymentRejectRequest(BaseModel):
    reason: str


class PaymentWebhookRequest(BaseModel):
    transaction_id: str
    status: str  # completed | failed
    gateway_id: Optional[str] = None
