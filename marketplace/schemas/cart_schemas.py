from typing import Optional
from sqlmodel import SQLModel


class CartAddRequest(SQLModel):
    product_id: int
    quantity: int = 1
    selected_variants: Optional[dict] = None


class CartUpdateRequest(SQLModel):
    quantity: int


