from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, JSON
from typing import Optional, TYPE_CHECKING
from decimal import Decimal

if TYPE_CHECKING:
    from marketplace.models.order import Order


class OrderItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="order.id", index=True)
    product_id: int = Field(foreign_key="product.id", index=True)
    # ownership snapshot so sellers keep seeing their lines
    store_id: Optional[int] = Field(default=None, index=True)

    product_title: str
    price: Decimal = Field(max_digits=12, decimal_places=2)
    quantity: int
    selected_variants: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    order: Optional["Order"] = Relationship(back_populates="items")

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity
