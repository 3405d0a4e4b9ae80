from pydantic import BaseModel, Field
from datetime import datetime


class SeasonalPromotionIn(BaseModel):
    name: str = Field(min_length=1)
    start_date: datetime
    end_date: datetime
    commission_rate: float = Field(ge=0, le=100)
    is_active: bool = True
