import logging
from datetime import datetime

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from config.constants import (
    BALANCE_AVAILABLE,
    BALANCE_PENDING,
    COMMISSION_STATUSES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_PENDING,
    TIER_DIRECT,
)
from utils.commission_rates import get_rates, round_money
from utils.errors import Conflict, ValidationError
from utils.wallet_service import credit_balance

logger = logging.getLogger(__name__)


# ==============================
# Append-only commission ledger
# ==============================

async def post_commission(
    db,
    *,
    beneficiary_id: ObjectId,
    order_id: ObjectId,
    amount: float,
    rate: float,
    tier: str,
    channel: str,
    product_id: ObjectId | None = None,
    from_user_id: ObjectId | None = None,
    status: str = STATUS_PENDING,
    promotion: str | None = None,
    now: datetime | None = None,
    session=None,
) -> dict:
    """
    Insert one commission transaction and credit the beneficiary.

    Pending entries land in `pending`, completed ones straight in
    `available`; both raise `lifetime` by the same amount. Must run
    inside the caller's transaction so ledger and balance commit together.
    """
    if amount < 0:
        raise ValidationError("Commission amount cannot be negative")
    if status not in (STATUS_PENDING, STATUS_COMPLETED):
        raise ValidationError(f"Cannot post a commission as {status}")

    now = now or datetime.utcnow()
    amount = round_money(amount)

    duplicate = await db.commission_transactions.find_one(
        {"beneficiary_id": beneficiary_id, "order_id": order_id, "channel": channel},
        {"_id": 1},
        session=session,
    )
    if duplicate:
        raise Conflict(f"Commission already posted for order {order_id}")

    doc = {
        "beneficiary_id": beneficiary_id,
        "order_id": order_id,
        "product_id": product_id,
        "from_user_id": from_user_id,
        "amount": amount,
        "rate": rate,
        "tier": tier,
        "channel": channel,
        "status": status,
        "promotion": promotion,
        "created_at": now,
        "completed_at": now if status == STATUS_COMPLETED else None,
        "cancelled_at": None,
    }

    try:
        result = await db.commission_transactions.insert_one(doc, session=session)
    except DuplicateKeyError:
        raise Conflict(f"Commission already posted for order {order_id}")
    doc["_id"] = result.inserted_id

    await credit_balance(
        db,
        beneficiary_id,
        BALANCE_AVAILABLE if status == STATUS_COMPLETED else BALANCE_PENDING,
        amount,
        order_id=order_id,
        reference_id=doc["_id"],
        reason_code=f"{tier.upper()}_COMMISSION",
        session=session,
    )

    logger.info(
        "COMMISSION_POSTED order=%s beneficiary=%s tier=%s amount=%s status=%s",
        order_id, beneficiary_id, tier, amount, status,
    )
    return doc


async def set_commission_status(db, commission_id: ObjectId, from_status: str, to_status: str, now=None, session=None):
    """
    Compare-and-set the status of one entry; Conflict if it moved meanwhile.
    """
    now = now or datetime.utcnow()
    stamp = "completed_at" if to_status == STATUS_COMPLETED else "cancelled_at"

    result = await db.commission_transactions.update_one(
        {"_id": commission_id, "status": from_status},
        {"$set": {"status": to_status, stamp: now}},
        session=session,
    )
    if result.modified_count != 1:
        raise Conflict("Commission status changed concurrently")


# ==============================
# Reads
# ==============================

async def get_user_total_sales(db, user_id: ObjectId) -> float:
    """Referrer volume: completed direct commissions."""
    pipeline = [
        {"$match": {
            "beneficiary_id": user_id,
            "tier": TIER_DIRECT,
            "status": STATUS_COMPLETED,
        }},
        {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
    ]
    result = await db.commission_transactions.aggregate(pipeline).to_list(1)
    return result[0]["total"] if result else 0


async def get_current_rates(db, user_id: ObjectId) -> dict:
    volume = await get_user_total_sales(db, user_id)
    rates = get_rates(volume)
    rates["volume"] = volume
    return rates


async def get_commission_history(
    db,
    user_id: ObjectId,
    *,
    page: int = 1,
    limit: int = 10,
    tier: str | None = None,
    status: str | None = None,
) -> list:
    query = {"beneficiary_id": user_id}
    if tier:
        query["tier"] = tier
    if status:
        if status not in COMMISSION_STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        query["status"] = status

    page = max(page, 1)
    skip = (page - 1) * limit

    return (
        await db.commission_transactions
        .find(query)
        .sort("created_at", -1)
        .skip(skip)
        .limit(limit)
        .to_list(limit)
    )


async def get_user_commissions_summary(db, user_id: ObjectId) -> dict:
    pipeline = [
        {"$match": {"beneficiary_id": user_id}},
        {"$group": {
            "_id": "$status",
            "count": {"$sum": 1},
            "total_amount": {"$sum": "$amount"},
        }},
    ]
    rows = await db.commission_transactions.aggregate(pipeline).to_list(None)

    summary = {
        STATUS_PENDING: {"count": 0, "total_amount": 0},
        STATUS_COMPLETED: {"count": 0, "total_amount": 0},
        STATUS_CANCELLED: {"count": 0, "total_amount": 0},
        "total": {"count": 0, "total_amount": 0},
    }
    for row in rows:
        summary[row["_id"]] = {
            "count": row["count"],
            "total_amount": round_money(row["total_amount"]),
        }
        summary["total"]["count"] += row["count"]
        summary["total"]["total_amount"] = round_money(
            summary["total"]["total_amount"] + row["total_amount"]
        )

    return summary


async def reconcile_lifetime(db, user_id: ObjectId) -> dict:
    """
    Recorded lifetime earnings must equal the sum of pending and
    completed ledger entries for the user.
    """
    user = await db.users.find_one({"_id": user_id}, {"commission_balance": 1})
    recorded = round_money((user or {}).get("commission_balance", {}).get("lifetime", 0))

    pipeline = [
        {"$match": {
            "beneficiary_id": user_id,
            "status": {"$in": [STATUS_PENDING, STATUS_COMPLETED]},
        }},
        {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
    ]
    rows = await db.commission_transactions.aggregate(pipeline).to_list(1)
    ledger_total = round_money(rows[0]["total"]) if rows else 0.0

    consistent = recorded == ledger_total
    if not consistent:
        logger.warning(
            "LIFETIME_MISMATCH user=%s recorded=%s ledger=%s",
            user_id, recorded, ledger_total,
        )

    return {
        "user_id": user_id,
        "recorded_lifetime": recorded,
        "ledger_total": ledger_total,
        "consistent": consistent,
    }
