from sqlmodel import SQLModel, Field
from sqlalchemy import CheckConstraint
from typing import Optional
from datetime import datetime
from decimal import Decimal


class Product(SQLModel, table=True):
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_product_quantity_non_negative"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    price: Decimal = Field(max_digits=12, decimal_places=2)

    # stock on hand and lifetime units sold; only touched through
    # marketplace.services.inventory_service
    quantity: int = Field(default=0)
    sold: int = Field(default=0)

    store_id: Optional[int] = Field(default=None, foreign_key="store.id", index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def in_stock(self) -> bool:
        return self.quantity > 0
