from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from enum import Enum
from bson import ObjectId

class UserRole(str, Enum):
    CUSTOMER = "customer"
    AFFILIATE = "affiliate"
    MARKETER = "marketer"
    ADMIN = "admin"


class CommissionBalance(BaseModel):
    pending: float = 0.0
    available: float = 0.0
    locked: float = 0.0
    lifetime: float = 0.0
    total_withdrawn: float = 0.0
    last_withdrawal_at: Optional[datetime] = None


def new_user_doc(
    name: str,
    role: str = UserRole.CUSTOMER.value,
    referrer_id: ObjectId | None = None,
    referred_at: datetime | None = None,
) -> dict:
    now = datetime.utcnow()
    return {
        "name": name,
        "role": role,
        "is_active": True,
        # one hop up; the indirect referrer is read through the direct one
        "referred_by": {"user_id": referrer_id, "date": referred_at or now} if referrer_id else None,
        "commission_balance": CommissionBalance().dict(),
        "assigned_orders_count": 0,
        "completed_orders_count": 0,
        "created_at": now,
        "last_active_at": now,
    }
