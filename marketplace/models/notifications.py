from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON


# ---------- ENUMS ----------

class RecipientRole(str, Enum):
    user = "user"
    seller = "seller"
    admin = "admin"


# ---------- MODEL ----------

class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    # exactly one of user_id / target_role is set
    user_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    target_role: Optional[str] = Field(default=None, index=True)

    type: str = Field(index=True)  # see marketplace.notifications.events
    title: str
    message: str

    order_id: Optional[int] = Field(default=None, index=True)
    payment_id: Optional[int] = Field(default=None, index=True)
    data: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    is_read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)
