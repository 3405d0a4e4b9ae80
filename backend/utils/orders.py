from datetime import datetime
from bson import ObjectId

from utils.errors import NotFound

# Timeline events emitted by the commission core
EVENT_COMMISSION_POSTED = "REFERRAL_COMMISSION_POSTED"
EVENT_COMMISSION_RELEASED = "COMMISSION_RELEASED"
EVENT_MARKETER_ASSIGNED = "MARKETER_ASSIGNED"
EVENT_MARKETER_UNASSIGNED = "MARKETER_UNASSIGNED"
EVENT_MARKED_DELIVERED = "ORDER_MARKED_DELIVERED"
EVENT_DELIVERY_CONFIRMED = "DELIVERY_CONFIRMED"
EVENT_SEASONAL_PROMO_APPLIED = "SEASONAL_PROMO_APPLIED"


async def get_order(db, order_id: ObjectId, session=None, **filters) -> dict:
    order = await db.orders.find_one({"_id": order_id, **filters}, session=session)
    if not order:
        raise NotFound("Order not found")
    return order


async def mark_commission_released(db, order_id: ObjectId, now: datetime | None = None, session=None):
    """
    Called once an order's commissions have matured into withdrawable funds.
    """
    now = now or datetime.utcnow()
    result = await db.orders.update_one(
        {"_id": order_id},
        {"$set": {
            "commission_released": True,
            "commission_released_at": now,
            "updated_at": now,
        }},
        session=session,
    )
    if result.matched_count == 0:
        raise NotFound("Order not found")


async def record_order_event(
    db,
    *,
    order_id,
    event: str,
    actor_role: str,
    actor_id=None,
    metadata: dict | None = None,
    session=None,
):
    """
    Single source of truth for order timeline events.
    """

    doc = {
        "order_id": ObjectId(order_id),
        "event": event,
        "actor_role": actor_role,
        "actor_id": ObjectId(actor_id) if actor_id else None,
        "metadata": metadata or {},
        "created_at": datetime.utcnow(),
    }

    await db.order_timeline.insert_one(doc, session=session)
