from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON
from typing import Optional
from datetime import datetime
from decimal import Decimal


class Payment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    order_id: int = Field(foreign_key="order.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    # equals order_id while the payment is non-failed; the unique index
    # allows one such payment per order
    active_order_id: Optional[int] = Field(default=None, unique=True)

    transaction_id: str = Field(index=True, unique=True)
    amount: Decimal = Field(max_digits=12, decimal_places=2)
    currency: str = Field(default="THB")
    method: str  # cash | credit_card | qr_code
    status: str  # pending | waiting_approval | completed | failed

    qr_code_data: Optional[str] = None
    slip_url: Optional[str] = None
    gateway_id: Optional[str] = None

    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    meta: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[int] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
