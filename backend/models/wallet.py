from pydantic import BaseModel, Field
from typing import Literal, Optional


class WalletWithdrawalRequest(BaseModel):
    amount: float = Field(gt=0)


class WithdrawalDecision(BaseModel):
    action: Literal["approve", "reject"]
    reason: Optional[str] = None
