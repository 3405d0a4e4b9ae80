import logging
from datetime import datetime, timedelta

from bson import ObjectId

from config.constants import (
    CHANNEL_REFERRAL,
    COMMISSION_STATUSES,
    DIRECT_REFERRER_RATE,
    INDIRECT_REFERRER_RATE,
    NON_SHARING_SELF_RATE,
    SHARING_PERIOD,
    SHARING_SELF_RATE,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_PENDING,
    TERMINAL_STATUSES,
    TIER_DIRECT,
    TIER_INDIRECT,
    TIER_SELF,
    BALANCE_PENDING,
)
from database import transaction
from utils.audit import COMMISSION_STATUS_CHANGED, log_audit
from utils.commission_ledger import post_commission, set_commission_status
from utils.commission_rates import percent_of
from utils.errors import Conflict, NotFound, ValidationError
from utils.guards import assert_non_negative_amount, parse_object_id
from utils.idempotency import (
    SCOPE_REFERRAL_COMMISSION,
    complete_idempotency_key,
    fail_idempotency_key,
    reserve_idempotency_key,
)
from utils.orders import (
    EVENT_COMMISSION_POSTED,
    EVENT_COMMISSION_RELEASED,
    get_order,
    mark_commission_released,
    record_order_event,
)
from utils.promotions import get_active_promotion
from utils.wallet_service import release_pending, reverse_credit

logger = logging.getLogger(__name__)


def is_within_sharing_period(referral_date: datetime | None, now: datetime) -> bool:
    if not referral_date:
        return False
    return now - referral_date < timedelta(days=SHARING_PERIOD)


def _referrer_id(user: dict | None):
    return ((user or {}).get("referred_by") or {}).get("user_id")


def _promoted_rate(base_rate: float, promo: dict | None) -> tuple[float, str | None]:
    """A promotion may raise a referrer rate, never lower it."""
    if promo and promo["commission_rate"] > base_rate:
        return promo["commission_rate"], promo["name"]
    return base_rate, None


# ======================================================
# REFERRAL COMMISSIONS
# ======================================================

async def process_sale_commission(db, sale: dict, now: datetime | None = None) -> dict:
    """
    Post self / direct / indirect commissions for a completed sale.

    sale: {order_id, buyer_id, amount, product_id}

    Idempotent per order_id: a replay returns the first result without
    posting anything. A missing referrer at either hop just skips that tier.
    """
    order_id = parse_object_id(sale.get("order_id"), "order_id")
    buyer_id = parse_object_id(sale.get("buyer_id"), "buyer_id")
    product_id = parse_object_id(sale["product_id"], "product_id") if sale.get("product_id") else None
    amount = assert_non_negative_amount(sale.get("amount"))
    now = now or datetime.utcnow()

    buyer = await db.users.find_one({"_id": buyer_id})
    if not buyer:
        raise NotFound("Buyer not found")

    key = str(order_id)
    stored = await reserve_idempotency_key(db=db, key=key, scope=SCOPE_REFERRAL_COMMISSION)
    if stored is not None:
        logger.info("COMMISSION_REPLAY order=%s", order_id)
        return stored

    try:
        result = await _post_referral_commissions(
            db,
            buyer=buyer,
            order_id=order_id,
            product_id=product_id,
            amount=amount,
            now=now,
        )
    except Exception as e:
        await fail_idempotency_key(db=db, key=key, scope=SCOPE_REFERRAL_COMMISSION, error=str(e))
        raise

    await complete_idempotency_key(db=db, key=key, scope=SCOPE_REFERRAL_COMMISSION, response=result)
    return result


async def _post_referral_commissions(db, *, buyer, order_id, product_id, amount, now) -> dict:
    buyer_id = buyer["_id"]
    referral = buyer.get("referred_by") or {}
    sharing = is_within_sharing_period(referral.get("date"), now)

    direct = None
    direct_id = referral.get("user_id")
    if direct_id:
        direct = await db.users.find_one({"_id": direct_id})

    # (beneficiary, tier, rate, promotion)
    plan = []
    promo = None
    if direct:
        promo = await get_active_promotion(db, now)

        self_rate = SHARING_SELF_RATE if sharing else NON_SHARING_SELF_RATE
        plan.append((buyer_id, TIER_SELF, self_rate, None))

        direct_rate, direct_promo = _promoted_rate(DIRECT_REFERRER_RATE, promo)
        plan.append((direct["_id"], TIER_DIRECT, direct_rate, direct_promo))

        indirect_id = _referrer_id(direct)
        if indirect_id and indirect_id not in (buyer_id, direct["_id"]):
            indirect = await db.users.find_one({"_id": indirect_id})
            if indirect:
                indirect_rate, indirect_promo = _promoted_rate(INDIRECT_REFERRER_RATE, promo)
                plan.append((indirect["_id"], TIER_INDIRECT, indirect_rate, indirect_promo))

    posted = []
    async with transaction(db) as session:
        order = await get_order(db, order_id, session=session)
        # order already matured: late postings go straight to available
        status = STATUS_COMPLETED if order.get("commission_released") else STATUS_PENDING

        for beneficiary_id, tier, rate, promo_name in plan:
            entry = await post_commission(
                db,
                beneficiary_id=beneficiary_id,
                order_id=order_id,
                product_id=product_id,
                from_user_id=buyer_id,
                amount=percent_of(amount, rate),
                rate=rate,
                tier=tier,
                channel=CHANNEL_REFERRAL,
                status=status,
                promotion=promo_name,
                now=now,
                session=session,
            )
            posted.append({
                "commission_id": entry["_id"],
                "beneficiary_id": beneficiary_id,
                "tier": tier,
                "rate": rate,
                "amount": entry["amount"],
                "status": entry["status"],
                "promotion": promo_name,
            })

        await db.orders.update_one(
            {"_id": order_id},
            {"$set": {
                "commission_processed": True,
                "commission_processed_at": now,
                "updated_at": now,
            }},
            session=session,
        )

        if posted:
            await record_order_event(
                db,
                order_id=order_id,
                event=EVENT_COMMISSION_POSTED,
                actor_role="system",
                metadata={
                    "entries": len(posted),
                    "is_sharing_period": sharing,
                },
                session=session,
            )

    if not direct:
        logger.info("COMMISSION_SKIPPED order=%s reason=no_referrer", order_id)

    return {
        "order_id": order_id,
        "buyer_id": buyer_id,
        "amount": amount,
        "is_sharing_period": sharing,
        "promotion": promo["name"] if promo else None,
        "transactions": posted,
    }


# ======================================================
# MATURATION
# ======================================================

async def release_order_commissions(db, order_id: ObjectId, now: datetime | None = None, session=None) -> dict:
    """
    Complete every pending referral commission of a confirmed order and
    move each amount pending -> available.
    """
    now = now or datetime.utcnow()
    if session is None:
        async with transaction(db) as session:
            return await _release_order_commissions(db, order_id, now, session)
    return await _release_order_commissions(db, order_id, now, session)


async def _release_order_commissions(db, order_id, now, session) -> dict:
    await get_order(db, order_id, session=session)

    entries = await db.commission_transactions.find(
        {
            "order_id": order_id,
            "channel": CHANNEL_REFERRAL,
            "status": STATUS_PENDING,
        },
        session=session,
    ).to_list(None)

    total = 0
    for entry in entries:
        await set_commission_status(db, entry["_id"], STATUS_PENDING, STATUS_COMPLETED, now, session=session)
        await release_pending(
            db,
            entry["beneficiary_id"],
            entry["amount"],
            order_id=order_id,
            reference_id=entry["_id"],
            session=session,
        )
        total += entry["amount"]

    await mark_commission_released(db, order_id, now, session=session)
    await record_order_event(
        db,
        order_id=order_id,
        event=EVENT_COMMISSION_RELEASED,
        actor_role="system",
        metadata={"released": len(entries), "amount": total},
        session=session,
    )

    logger.info("COMMISSION_RELEASED order=%s entries=%s", order_id, len(entries))
    return {"order_id": order_id, "released": len(entries), "amount": total}


# ======================================================
# ADMIN STATUS CHANGES
# ======================================================

async def update_commission_status(
    db,
    commission_id,
    status: str,
    actor_id=None,
    now: datetime | None = None,
) -> dict:
    if status not in COMMISSION_STATUSES:
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(sorted(COMMISSION_STATUSES))}"
        )

    commission_id = parse_object_id(commission_id, "commission_id")
    now = now or datetime.utcnow()

    entry = await db.commission_transactions.find_one({"_id": commission_id})
    if not entry:
        raise NotFound("Commission not found")

    current = entry["status"]
    if current == status:
        return entry
    if current in TERMINAL_STATUSES:
        raise Conflict(f"Commission is already {current}")

    async with transaction(db) as session:
        await set_commission_status(db, commission_id, current, status, now, session=session)

        if status == STATUS_COMPLETED:
            await release_pending(
                db,
                entry["beneficiary_id"],
                entry["amount"],
                order_id=entry["order_id"],
                reference_id=commission_id,
                session=session,
            )
        elif status == STATUS_CANCELLED:
            await reverse_credit(
                db,
                entry["beneficiary_id"],
                BALANCE_PENDING,
                entry["amount"],
                order_id=entry["order_id"],
                reference_id=commission_id,
                reason_code="COMMISSION_CANCELLED",
                session=session,
            )

        await log_audit(
            db,
            actor_id=actor_id,
            actor_role="admin",
            action=COMMISSION_STATUS_CHANGED,
            metadata={
                "commission_id": str(commission_id),
                "from": current,
                "to": status,
                "amount": entry["amount"],
            },
            session=session,
        )

    entry["status"] = status
    return entry
