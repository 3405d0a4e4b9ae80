import logging
from datetime import datetime, timedelta

from bson import ObjectId

from config.constants import CHANNEL_DELIVERY, STATUS_COMPLETED, TIER_MARKETER
from config.env import MARKETER_ASSIGNMENT_DAYS
from database import transaction
from utils.commission_engine import release_order_commissions
from utils.commission_ledger import post_commission
from utils.commission_rates import percent_of
from utils.commission_settings import get_user_rate
from utils.errors import Conflict, NotFound
from utils.guards import parse_object_id
from utils.orders import (
    EVENT_DELIVERY_CONFIRMED,
    EVENT_MARKED_DELIVERED,
    EVENT_MARKETER_ASSIGNED,
    EVENT_MARKETER_UNASSIGNED,
    get_order,
    record_order_event,
)

logger = logging.getLogger(__name__)


# ======================================================
# ASSIGNMENT
# ======================================================

async def _least_busy_marketer(db, session=None, exclude=None):
    query = {"role": "marketer", "is_active": True}
    if exclude:
        query["_id"] = {"$ne": exclude}

    marketers = await (
        db.users
        .find(query, session=session)
        .sort("assigned_orders_count", 1)
        .limit(1)
        .to_list(1)
    )
    if not marketers and exclude:
        # sole marketer gets the order back
        return await _least_busy_marketer(db, session=session)
    if not marketers:
        raise NotFound("No available marketers to assign")
    return marketers[0]


async def _assign(db, order_id: ObjectId, now: datetime, session, reason: str, exclude=None) -> dict:
    marketer = await _least_busy_marketer(db, session=session, exclude=exclude)
    expires_at = now + timedelta(days=MARKETER_ASSIGNMENT_DAYS)

    await db.orders.update_one(
        {"_id": order_id},
        {
            "$set": {
                "marketer_id": marketer["_id"],
                "assigned_at": now,
                "assignment_expires_at": expires_at,
                "status": "assigned",
                "updated_at": now,
            },
            "$push": {
                "previous_marketers": {
                    "marketer_id": marketer["_id"],
                    "assigned_at": now,
                    "reason": reason,
                }
            },
        },
        session=session,
    )
    await db.users.update_one(
        {"_id": marketer["_id"]},
        {"$inc": {"assigned_orders_count": 1}},
        session=session,
    )
    await record_order_event(
        db,
        order_id=order_id,
        event=EVENT_MARKETER_ASSIGNED,
        actor_role="system",
        metadata={"marketer_id": str(marketer["_id"]), "reason": reason},
        session=session,
    )
    return marketer


async def assign_order(db, order_id, now: datetime | None = None) -> dict:
    """
    Hand an order to the active marketer with the fewest open assignments.
    """
    order_id = parse_object_id(order_id, "order_id")
    now = now or datetime.utcnow()

    async with transaction(db) as session:
        order = await get_order(db, order_id, session=session)
        if order.get("marketer_id"):
            raise Conflict("Order already assigned")
        marketer = await _assign(db, order_id, now, session, "Initial assignment")

    logger.info("ORDER_ASSIGNED order=%s marketer=%s", order_id, marketer["_id"])
    return await get_order(db, order_id)


async def reassign_expired_orders(db, now: datetime | None = None) -> dict:
    """
    Daily sweep: orders still undelivered past their assignment deadline
    move to another marketer. Failures are logged per order.
    """
    now = now or datetime.utcnow()

    expired = await db.orders.find({
        "status": "assigned",
        "assignment_expires_at": {"$lte": now},
        "delivery_proof": None,
    }).to_list(None)

    reassigned = 0
    failed = 0
    for order in expired:
        try:
            previous = order["marketer_id"]
            async with transaction(db) as session:
                await db.orders.update_one(
                    {"_id": order["_id"]},
                    {
                        "$push": {
                            "previous_marketers": {
                                "marketer_id": previous,
                                "assigned_at": order.get("assigned_at"),
                                "unassigned_at": now,
                                "reason": f"Assignment expired ({MARKETER_ASSIGNMENT_DAYS} days)",
                            }
                        },
                        "$unset": {"marketer_id": "", "assigned_at": "", "assignment_expires_at": ""},
                    },
                    session=session,
                )
                await db.users.update_one(
                    {"_id": previous, "assigned_orders_count": {"$gt": 0}},
                    {"$inc": {"assigned_orders_count": -1}},
                    session=session,
                )
                await record_order_event(
                    db,
                    order_id=order["_id"],
                    event=EVENT_MARKETER_UNASSIGNED,
                    actor_role="system",
                    metadata={"marketer_id": str(previous)},
                    session=session,
                )
                await _assign(db, order["_id"], now, session, "Reassignment", exclude=previous)
            reassigned += 1
        except Exception:
            failed += 1
            logger.exception("REASSIGNMENT_ERROR order=%s", order.get("_id"))

    logger.info("REASSIGNMENT_SWEEP reassigned=%s failed=%s", reassigned, failed)
    return {"reassigned": reassigned, "failed": failed, "total": len(expired)}


# ======================================================
# DELIVERY
# ======================================================

async def mark_delivered(db, order_id, marketer_id, delivery_proof: str, now: datetime | None = None) -> dict:
    order_id = parse_object_id(order_id, "order_id")
    marketer_id = parse_object_id(marketer_id, "marketer_id")
    now = now or datetime.utcnow()

    order = await get_order(db, order_id)
    if order.get("marketer_id") != marketer_id:
        raise Conflict("Not authorized to update this order")
    if order.get("status") != "assigned":
        raise Conflict(f"Order cannot be marked delivered from status {order.get('status')}")

    await db.orders.update_one(
        {"_id": order_id},
        {"$set": {
            "delivery_proof": delivery_proof,
            "marked_delivered_at": now,
            "status": "delivered",
            "updated_at": now,
        }},
    )
    await record_order_event(
        db,
        order_id=order_id,
        event=EVENT_MARKED_DELIVERED,
        actor_role="marketer",
        actor_id=marketer_id,
    )
    return await get_order(db, order_id)


async def process_marketer_commission(db, order: dict, now: datetime, session=None) -> dict:
    """
    Delivery channel: one completed entry for the assigned marketer,
    credited straight to the available balance.
    """
    rate = order.get("commission_rate") or await get_user_rate(db, order["marketer_id"], session=session)
    return await post_commission(
        db,
        beneficiary_id=order["marketer_id"],
        order_id=order["_id"],
        product_id=order.get("product_id"),
        amount=percent_of(order.get("total_amount", 0), rate),
        rate=rate,
        tier=TIER_MARKETER,
        channel=CHANNEL_DELIVERY,
        status=STATUS_COMPLETED,
        now=now,
        session=session,
    )


async def confirm_delivery(db, order_id, buyer_id, now: datetime | None = None) -> dict:
    """
    Buyer confirmation: pays the marketer, matures the referral
    commissions and releases the order for withdrawal, all at once.
    """
    order_id = parse_object_id(order_id, "order_id")
    buyer_id = parse_object_id(buyer_id, "buyer_id")
    now = now or datetime.utcnow()

    order = await db.orders.find_one({
        "_id": order_id,
        "buyer_id": buyer_id,
        "status": "delivered",
        "customer_confirmed": {"$ne": True},
    })
    if not order:
        raise NotFound("Order not found or already confirmed")

    marketer_commission = None
    async with transaction(db) as session:
        result = await db.orders.update_one(
            {"_id": order_id, "customer_confirmed": {"$ne": True}},
            {"$set": {
                "customer_confirmed": True,
                "confirmed_at": now,
                "status": "completed",
                "updated_at": now,
            }},
            session=session,
        )
        if result.modified_count != 1:
            raise Conflict("Order already confirmed")

        if not order.get("commission_released") and order.get("marketer_id"):
            marketer_commission = await process_marketer_commission(db, order, now, session=session)

        await release_order_commissions(db, order_id, now, session=session)

        if order.get("marketer_id"):
            await db.users.update_one(
                {"_id": order["marketer_id"], "assigned_orders_count": {"$gt": 0}},
                {"$inc": {"assigned_orders_count": -1}},
                session=session,
            )
            await db.users.update_one(
                {"_id": order["marketer_id"]},
                {"$inc": {"completed_orders_count": 1}},
                session=session,
            )

        await record_order_event(
            db,
            order_id=order_id,
            event=EVENT_DELIVERY_CONFIRMED,
            actor_role="customer",
            actor_id=buyer_id,
            session=session,
        )

    logger.info("DELIVERY_CONFIRMED order=%s", order_id)
    return {
        "order_id": order_id,
        "confirmed_at": now,
        "marketer_commission": marketer_commission["amount"] if marketer_commission else None,
    }
