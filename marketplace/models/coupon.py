from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal


class Coupon(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    kind: str = Field(default="standard")  # standard | welcome

    # flat amount wins over percent when both are set
    discount_amount: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)
    discount_percent: Optional[Decimal] = Field(default=None, max_digits=5, decimal_places=2)
    max_discount: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)
    min_purchase: Decimal = Field(default=Decimal("0.00"), max_digits=12, decimal_places=2)
    expires_at: Optional[datetime] = None

    # flips false -> true once, inside the checkout that consumes it
    is_used: bool = Field(default=False, index=True)
    used_at: Optional[datetime] = None
    order_id: Optional[int] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
