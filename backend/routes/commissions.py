from fastapi import APIRouter, Depends, Query
from typing import Optional

from database import get_db
from models.commission import SaleEvent, CommissionStatusUpdate, CommissionRateUpdate
from models.user import UserRole
from utils.commission_engine import (
    process_sale_commission,
    release_order_commissions,
    update_commission_status,
)
from utils.commission_ledger import (
    get_commission_history,
    get_current_rates,
    get_user_commissions_summary,
    reconcile_lifetime,
)
from utils.commission_settings import get_commission_settings, set_user_rate, update_default_rate
from utils.guards import parse_object_id
from utils.security import get_current_user, require_role
from utils.serializers import serialize_commission, serialize_doc
from utils.wallet_service import get_wallet_balance


router = APIRouter(prefix="/commissions", tags=["Commissions"])


# =====================================================
# USER VIEWS
# =====================================================

@router.get("/history")
async def commission_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    tier: Optional[str] = None,
    status: Optional[str] = None,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    entries = await get_commission_history(
        db, user["_id"], page=page, limit=limit, tier=tier, status=status
    )
    return {
        "page": page,
        "count": len(entries),
        "commissions": [serialize_commission(e) for e in entries],
    }


@router.get("/summary")
async def commission_summary(
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    return {
        "summary": await get_user_commissions_summary(db, user["_id"]),
        "balance": serialize_doc(await get_wallet_balance(db, user["_id"])),
        "current_rates": await get_current_rates(db, user["_id"]),
    }


@router.get("/reconcile")
async def reconcile_mine(
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    return serialize_doc(await reconcile_lifetime(db, user["_id"]))


# =====================================================
# ADMIN
# =====================================================

@router.post("/admin/process-sale")
async def process_sale(
    data: SaleEvent,
    admin=Depends(require_role(UserRole.ADMIN.value)),
    db=Depends(get_db),
):
    result = await process_sale_commission(db, data.dict())
    return serialize_doc(result)


@router.patch("/admin/{commission_id}/status")
async def change_commission_status(
    commission_id: str,
    data: CommissionStatusUpdate,
    admin=Depends(require_role(UserRole.ADMIN.value)),
    db=Depends(get_db),
):
    entry = await update_commission_status(
        db, commission_id, data.status, actor_id=admin["_id"]
    )
    return serialize_commission(entry)


@router.post("/admin/orders/{order_id}/release")
async def release_commissions(
    order_id: str,
    admin=Depends(require_role(UserRole.ADMIN.value)),
    db=Depends(get_db),
):
    result = await release_order_commissions(db, parse_object_id(order_id, "order_id"))
    return serialize_doc(result)


@router.get("/admin/reconcile/{user_id}")
async def reconcile_user(
    user_id: str,
    admin=Depends(require_role(UserRole.ADMIN.value)),
    db=Depends(get_db),
):
    result = await reconcile_lifetime(db, parse_object_id(user_id, "user_id"))
    return serialize_doc(result)


# =====================================================
# ADMIN: RATE SETTINGS
# =====================================================

@router.get("/admin/settings")
async def commission_settings(
    admin=Depends(require_role(UserRole.ADMIN.value)),
    db=Depends(get_db),
):
    return serialize_doc(await get_commission_settings(db))


@router.put("/admin/settings")
async def change_default_rate(
    data: CommissionRateUpdate,
    admin=Depends(require_role(UserRole.ADMIN.value)),
    db=Depends(get_db),
):
    settings = await update_default_rate(db, data.rate, actor_id=admin["_id"])
    return {
        "success": True,
        "message": "Commission settings updated successfully",
        "settings": serialize_doc(settings),
    }


@router.put("/admin/users/{user_id}/rate")
async def change_user_rate(
    user_id: str,
    data: CommissionRateUpdate,
    admin=Depends(require_role(UserRole.ADMIN.value)),
    db=Depends(get_db),
):
    override = await set_user_rate(db, user_id, data.rate, actor_id=admin["_id"])
    return {"success": True, "user_id": user_id, **serialize_doc(override)}
