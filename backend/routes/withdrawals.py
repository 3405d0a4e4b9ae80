from fastapi import APIRouter, Depends, Query
from typing import Optional

from database import get_db
from models.user import UserRole
from models.wallet import WithdrawalDecision
from utils.security import get_current_user, require_role
from utils.serializers import serialize_doc, serialize_withdrawal
from utils.withdrawal_window import compute_window
from utils.withdrawals import (
    check_eligibility,
    decide_withdrawal,
    get_withdrawal_history,
    process_pending_withdrawals,
    request_withdrawal,
)


router = APIRouter(prefix="/withdrawals", tags=["Withdrawals"])


@router.get("/window")
async def withdrawal_window():
    return serialize_doc(compute_window())


# =====================================================
# ORDER WITHDRAWALS
# =====================================================

@router.get("/orders/{order_id}/eligibility")
async def order_eligibility(
    order_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    return serialize_doc(await check_eligibility(db, order_id, user["_id"]))


@router.post("/orders/{order_id}")
async def withdraw_order_commission(
    order_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    withdrawal = await request_withdrawal(db, order_id, user["_id"])
    return {
        "success": True,
        "message": "Withdrawal request submitted",
        "withdrawal": serialize_withdrawal(withdrawal),
    }


@router.get("/history")
async def withdrawal_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    items = await get_withdrawal_history(db, user["_id"], status=status, page=page, limit=limit)
    return {
        "page": page,
        "count": len(items),
        "withdrawals": [serialize_withdrawal(w) for w in items],
    }


# =====================================================
# ADMIN
# =====================================================

@router.post("/admin/process")
async def run_withdrawal_sweep(
    admin=Depends(require_role(UserRole.ADMIN.value)),
    db=Depends(get_db),
):
    return await process_pending_withdrawals(db)


@router.post("/admin/{withdrawal_id}/decision")
async def withdrawal_decision(
    withdrawal_id: str,
    data: WithdrawalDecision,
    admin=Depends(require_role(UserRole.ADMIN.value)),
    db=Depends(get_db),
):
    withdrawal = await decide_withdrawal(
        db,
        withdrawal_id,
        data.action,
        admin_id=admin["_id"],
        reason=data.reason,
    )
    return {"success": True, "withdrawal": serialize_withdrawal(withdrawal)}
