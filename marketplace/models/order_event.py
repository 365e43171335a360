from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON


class OrderEvent(SQLModel, table=True):
    """One entry of an order's timeline. Rows are only ever appended."""
    __tablename__ = "order_event"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    order_id: int = Field(foreign_key="order.id", index=True)
    # set for events raised by the payment workflow
    payment_id: Optional[int] = Field(default=None, foreign_key="payment.id", index=True)

    event_type: str = Field(index=True)  # order_placed | status_changed | payment_* | slip_uploaded
    label: str
    meta: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    actor_id: Optional[int] = Field(default=None, foreign_key="user.id")
    actor_role: str = Field(default="system")  # user | seller | admin | system
    created_at: datetime = Field(default_factory=datetime.utcnow)
