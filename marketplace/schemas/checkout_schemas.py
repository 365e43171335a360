# marketplace/schemas/checkout_schemas.py
from pydantic import BaseModel
from typing import Optional


class CheckoutRequest(BaseModel):
    coupon_code: Optional[str] = None
    coupon_id: Optional[int] = None
    shipping_address: Optional[str] = None
    shipping_phone: Optional[str] = None
