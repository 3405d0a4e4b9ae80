from fastapi import APIRouter, Depends

from database import get_db
from models.wallet import WalletWithdrawalRequest
from utils.security import get_current_user
from utils.serializers import serialize_doc, serialize_withdrawal
from utils.wallet_service import get_wallet, get_wallet_balance, get_wallet_summary
from utils.withdrawals import request_wallet_withdrawal


router = APIRouter(prefix="/wallet", tags=["Wallet"])


@router.get("")
async def my_wallet(
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    return serialize_doc(await get_wallet(db, user["_id"]))


@router.get("/balance")
async def wallet_balance(
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    return serialize_doc(await get_wallet_balance(db, user["_id"]))


@router.get("/summary")
async def wallet_summary(
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    return serialize_doc(await get_wallet_summary(db, user["_id"]))


@router.post("/withdraw")
async def wallet_withdraw(
    data: WalletWithdrawalRequest,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    withdrawal = await request_wallet_withdrawal(db, user["_id"], data.amount)
    return {
        "success": True,
        "message": "Withdrawal request submitted",
        "withdrawal": serialize_withdrawal(withdrawal),
    }
