from fastapi import APIRouter, Depends

from database import get_db
from models.user import UserRole
from models.commission import DeliveryProof
from utils.marketers import (
    assign_order,
    confirm_delivery,
    mark_delivered,
    reassign_expired_orders,
)
from utils.security import get_current_user, require_role
from utils.serializers import serialize_doc


router = APIRouter(prefix="/marketers", tags=["Marketers"])


# =====================================================
# DELIVERY FLOW
# =====================================================

@router.post("/orders/{order_id}/delivered")
async def order_delivered(
    order_id: str,
    data: DeliveryProof,
    marketer=Depends(require_role(UserRole.MARKETER.value)),
    db=Depends(get_db),
):
    order = await mark_delivered(db, order_id, marketer["_id"], data.delivery_proof)
    return {"success": True, "order": serialize_doc(order)}


@router.post("/orders/{order_id}/confirm")
async def order_confirm(
    order_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    result = await confirm_delivery(db, order_id, user["_id"])
    return {"success": True, **serialize_doc(result)}


# =====================================================
# ADMIN
# =====================================================

@router.post("/admin/orders/{order_id}/assign")
async def order_assign(
    order_id: str,
    admin=Depends(require_role(UserRole.ADMIN.value)),
    db=Depends(get_db),
):
    order = await assign_order(db, order_id)
    return {"success": True, "order": serialize_doc(order)}


@router.post("/admin/reassign-expired")
async def run_reassignment(
    admin=Depends(require_role(UserRole.ADMIN.value)),
    db=Depends(get_db),
):
    return await reassign_expired_orders(db)
