from pydantic import BaseModel, Field
from typing import Literal, Optional


class SaleEvent(BaseModel):
    order_id: str
    buyer_id: str
    amount: float = Field(ge=0)
    product_id: Optional[str] = None


class CommissionStatusUpdate(BaseModel):
    status: Literal["pending", "completed", "cancelled"]


class DeliveryProof(BaseModel):
    delivery_proof: str = Field(min_length=1)


class CommissionRateUpdate(BaseModel):
    rate: float = Field(ge=0, le=100)
