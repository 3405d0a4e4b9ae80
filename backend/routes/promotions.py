from fastapi import APIRouter, Depends

from database import get_db
from models.promotion import SeasonalPromotionIn
from models.user import UserRole
from utils.guards import parse_object_id
from utils.promotions import (
    apply_seasonal_promo,
    delete_promotion,
    get_active_promotion,
    list_promotions,
    upsert_promotion,
)
from utils.security import require_role
from utils.serializers import serialize_doc, serialize_docs


router = APIRouter(prefix="/promotions", tags=["Promotions"])


@router.get("/active")
async def active_promotion(db=Depends(get_db)):
    promo = await get_active_promotion(db)
    return {"active": promo is not None, "promotion": serialize_doc(promo)}


# =====================================================
# ADMIN
# =====================================================

@router.get("/admin")
async def all_promotions(
    admin=Depends(require_role(UserRole.ADMIN.value)),
    db=Depends(get_db),
):
    promos = await list_promotions(db)
    return {"count": len(promos), "promotions": serialize_docs(promos)}


@router.post("/admin")
async def save_promotion(
    data: SeasonalPromotionIn,
    admin=Depends(require_role(UserRole.ADMIN.value)),
    db=Depends(get_db),
):
    promo = await upsert_promotion(db, actor_id=admin["_id"], **data.dict())
    return {"success": True, "promotion": serialize_doc(promo)}


@router.delete("/admin/{name}")
async def remove_promotion(
    name: str,
    admin=Depends(require_role(UserRole.ADMIN.value)),
    db=Depends(get_db),
):
    await delete_promotion(db, name, actor_id=admin["_id"])
    return {"success": True, "message": f"Promotion '{name}' deleted"}


@router.post("/admin/orders/{order_id}/apply")
async def apply_promotion(
    order_id: str,
    admin=Depends(require_role(UserRole.ADMIN.value)),
    db=Depends(get_db),
):
    order = await apply_seasonal_promo(db, parse_object_id(order_id, "order_id"))
    return {"applied": order is not None, "order": serialize_doc(order)}
