from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import CheckConstraint, Column, JSON
from typing import List, Optional
from datetime import datetime
from decimal import Decimal


class Cart(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", unique=True, index=True)

    # denormalised sum of price * quantity over the lines
    total: Decimal = Field(default=Decimal("0.00"), max_digits=12, decimal_places=2)
    # bumped by every write; guards read-then-write races
    version: int = Field(default=0)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    items: List["CartItem"] = Relationship(
        back_populates="cart",
        sa_relationship_kwargs={"order_by": "CartItem.id", "cascade": "all, delete-orphan"},
    )


class CartItem(SQLModel, table=True):
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_cart_item_quantity_positive"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    cart_id: int = Field(foreign_key="cart.id", index=True)
    product_id: int = Field(foreign_key="product.id")
    quantity: int = 1
    # price at the time the line was added, never re-read from the catalog
    price: Decimal = Field(max_digits=12, decimal_places=2)
    selected_variants: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=datetime.utcnow)

    cart: Optional[Cart] = Relationship(back_populates="items")

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity
