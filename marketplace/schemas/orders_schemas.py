from pydantic import BaseModel
from typing import Optional


class OrderStatusUpdate(BaseModel):
    status: str
    note: Optional[str] = None
