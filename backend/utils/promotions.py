import logging
from datetime import datetime

from bson import ObjectId

from database import transaction
from utils.audit import PROMOTION_DELETED, PROMOTION_UPSERTED, log_audit
from utils.errors import Conflict, NotFound, ValidationError
from utils.orders import EVENT_SEASONAL_PROMO_APPLIED, get_order, record_order_event

logger = logging.getLogger(__name__)

REGISTRY_LOCK_ID = "seasonal_promotions"


def _validate(name: str, start_date: datetime, end_date: datetime, commission_rate: float) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Promotion name is required")
    if not isinstance(start_date, datetime) or not isinstance(end_date, datetime):
        raise ValidationError("Promotion dates are required")
    if start_date >= end_date:
        raise ValidationError("Promotion start_date must be before end_date")
    if commission_rate is None or not 0 <= commission_rate <= 100:
        raise ValidationError("Promotion commission_rate must be between 0 and 100")
    return name


async def upsert_promotion(
    db,
    *,
    name: str,
    start_date: datetime,
    end_date: datetime,
    commission_rate: float,
    is_active: bool = True,
    actor_id=None,
    now: datetime | None = None,
) -> dict:
    """
    Insert or replace a promotion by name.

    Ranges are inclusive on both ends; any overlap with a promotion of a
    different name is a Conflict. The registry lock document is written
    first so concurrent upserts conflict inside the transaction instead
    of both passing the overlap check.
    """
    name = _validate(name, start_date, end_date, commission_rate)
    now = now or datetime.utcnow()

    async with transaction(db) as session:
        await db.settings.update_one(
            {"_id": REGISTRY_LOCK_ID},
            {"$inc": {"version": 1}, "$set": {"updated_at": now}},
            upsert=True,
            session=session,
        )

        overlapping = await db.seasonal_promotions.find_one(
            {
                "name": {"$ne": name},
                "start_date": {"$lte": end_date},
                "end_date": {"$gte": start_date},
            },
            session=session,
        )
        if overlapping:
            raise Conflict(
                f"Promotion '{name}' overlaps existing promotion '{overlapping['name']}'"
            )

        existing = await db.seasonal_promotions.find_one({"name": name}, session=session)

        promo = {
            "name": name,
            "start_date": start_date,
            "end_date": end_date,
            "commission_rate": commission_rate,
            "is_active": is_active,
            "created_at": existing["created_at"] if existing else now,
            "updated_at": now,
        }
        await db.seasonal_promotions.replace_one(
            {"name": name},
            promo,
            upsert=True,
            session=session,
        )

        await log_audit(
            db,
            actor_id=actor_id,
            actor_role="admin",
            action=PROMOTION_UPSERTED,
            metadata={
                "name": name,
                "created": existing is None,
                "commission_rate": commission_rate,
            },
            session=session,
        )

    logger.info("PROMOTION_UPSERTED name=%s rate=%s", name, commission_rate)
    return promo


async def delete_promotion(db, name: str, actor_id=None):
    result = await db.seasonal_promotions.delete_one({"name": name})
    if result.deleted_count == 0:
        raise NotFound(f"Promotion '{name}' not found")

    await log_audit(
        db,
        actor_id=actor_id,
        actor_role="admin",
        action=PROMOTION_DELETED,
        metadata={"name": name},
    )


async def list_promotions(db) -> list:
    return await db.seasonal_promotions.find({}, {"_id": 0}).sort("start_date", 1).to_list(None)


async def get_active_promotion(db, now: datetime | None = None, session=None) -> dict | None:
    now = now or datetime.utcnow()
    return await db.seasonal_promotions.find_one(
        {
            "is_active": True,
            "start_date": {"$lte": now},
            "end_date": {"$gte": now},
        },
        {"_id": 0},
        session=session,
    )


async def apply_seasonal_promo(db, order_id: ObjectId, now: datetime | None = None) -> dict | None:
    """
    Flag an order as sold under the active promotion and raise its
    snapshotted commission_rate when the promotion pays more.
    """
    now = now or datetime.utcnow()
    promo = await get_active_promotion(db, now)
    if not promo:
        return None

    order = await get_order(db, order_id)
    update = {
        "is_seasonal_promo": True,
        "seasonal_promo_name": promo["name"],
        "seasonal_promo_rate": promo["commission_rate"],
        "updated_at": now,
    }
    if (order.get("commission_rate") or 0) < promo["commission_rate"]:
        update["commission_rate"] = promo["commission_rate"]

    await db.orders.update_one({"_id": order_id}, {"$set": update})
    await record_order_event(
        db,
        order_id=order_id,
        event=EVENT_SEASONAL_PROMO_APPLIED,
        actor_role="system",
        metadata={"promotion": promo["name"], "rate": promo["commission_rate"]},
    )

    order.update(update)
    return order
