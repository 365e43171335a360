from decimal import Decimal
from pydantic import BaseModel
from typing import Optional


class CouponValidateRequest(BaseModel):
    code: str
    cart_total: Optional[Decimal] = None  # defaults to the caller's cart total
