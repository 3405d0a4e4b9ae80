import logging
from datetime import datetime

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from config.constants import (
    STATUS_COMPLETED,
    WITHDRAWAL_COMPLETED,
    WITHDRAWAL_REJECTED,
    WITHDRAWAL_REQUESTED,
)
from database import transaction
from utils.audit import WITHDRAWAL_APPROVED, WITHDRAWAL_REJECTED as AUDIT_WITHDRAWAL_REJECTED, log_audit
from utils.commission_rates import round_money
from utils.errors import Conflict, NotFound, ValidationError, WindowClosed
from utils.guards import parse_object_id
from utils.orders import get_order
from utils.wallet_service import finalize_locked, lock_funds, release_locked
from utils.withdrawal_window import compute_window

logger = logging.getLogger(__name__)


def _order_user_key(order_id: ObjectId, user_id: ObjectId) -> str:
    return f"{order_id}:{user_id}"


def _assert_window_open(now: datetime) -> dict:
    window = compute_window(now)
    if not window["is_active"]:
        raise WindowClosed(
            "Withdrawals are only allowed during the last days of the month. "
            f"Next window: {window['available_from']:%Y-%m-%d} to {window['available_until']:%Y-%m-%d}"
        )
    return window


async def _matured_amount(db, order_id: ObjectId, user_id: ObjectId) -> float:
    """Completed commission a user earned on one order, all channels."""
    pipeline = [
        {"$match": {
            "order_id": order_id,
            "beneficiary_id": user_id,
            "status": STATUS_COMPLETED,
        }},
        {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
    ]
    rows = await db.commission_transactions.aggregate(pipeline).to_list(1)
    return round_money(rows[0]["total"]) if rows else 0.0


async def _open_withdrawal(db, order_id: ObjectId, user_id: ObjectId):
    return await db.withdrawals.find_one({
        "order_id": order_id,
        "user_id": user_id,
        "status": {"$ne": WITHDRAWAL_REJECTED},
    })


# ======================================================
# ORDER WITHDRAWALS
# ======================================================

async def check_eligibility(db, order_id, user_id, now: datetime | None = None) -> dict:
    order_id = parse_object_id(order_id, "order_id")
    user_id = parse_object_id(user_id, "user_id")
    now = now or datetime.utcnow()

    order = await get_order(db, order_id)
    existing = await _open_withdrawal(db, order_id, user_id)

    if existing and existing["status"] == WITHDRAWAL_COMPLETED:
        return {
            "eligible": True,
            "processed": True,
            "requested": True,
            "available": False,
            "amount": existing["amount"],
            "message": "Withdrawal already processed",
        }

    if not order.get("commission_released"):
        return {
            "eligible": False,
            "processed": False,
            "requested": False,
            "available": False,
            "amount": 0.0,
            "message": "Commission not yet released",
        }

    amount = await _matured_amount(db, order_id, user_id)
    if amount <= 0:
        return {
            "eligible": False,
            "processed": False,
            "requested": False,
            "available": False,
            "amount": 0.0,
            "message": "No matured commission on this order",
        }

    window = compute_window(now)
    requested = existing is not None
    if requested:
        message = "Withdrawal already requested"
    elif window["is_active"]:
        message = "Withdrawal is currently available"
    else:
        message = (
            f"Next withdrawal window: {window['available_from']:%Y-%m-%d} "
            f"to {window['available_until']:%Y-%m-%d}"
        )

    return {
        "eligible": True,
        "processed": False,
        "requested": requested,
        "available": window["is_active"] and not requested,
        "amount": amount,
        "available_from": window["available_from"],
        "available_until": window["available_until"],
        "current_date": now,
        "message": message,
    }


async def request_withdrawal(db, order_id, user_id, now: datetime | None = None) -> dict:
    """
    Withdraw the matured commission a user earned on one order.
    The window check comes first: outside it nothing else is evaluated.
    """
    now = now or datetime.utcnow()
    _assert_window_open(now)

    order_id = parse_object_id(order_id, "order_id")
    user_id = parse_object_id(user_id, "user_id")

    order = await get_order(db, order_id)
    if not order.get("commission_released"):
        raise ValidationError("Commission not yet released for this order")

    if await _open_withdrawal(db, order_id, user_id):
        raise Conflict("Withdrawal already requested for this order")

    amount = await _matured_amount(db, order_id, user_id)
    if amount <= 0:
        raise ValidationError("No matured commission on this order")

    withdrawal = {
        "_id": ObjectId(),
        "user_id": user_id,
        "order_id": order_id,
        "order_user_key": _order_user_key(order_id, user_id),
        "amount": amount,
        "status": WITHDRAWAL_REQUESTED,
        "requested_at": now,
        "processed_at": None,
        "processed_by": None,
    }

    async with transaction(db) as session:
        await lock_funds(
            db,
            user_id,
            amount,
            order_id=order_id,
            reference_id=withdrawal["_id"],
            session=session,
        )
        try:
            await db.withdrawals.insert_one(withdrawal, session=session)
        except DuplicateKeyError:
            raise Conflict("Withdrawal already requested for this order")

    logger.info("WITHDRAWAL_REQUESTED order=%s user=%s amount=%s", order_id, user_id, amount)
    return withdrawal


# ======================================================
# WALLET WITHDRAWALS
# ======================================================

async def request_wallet_withdrawal(db, user_id, amount: float, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    _assert_window_open(now)

    user_id = parse_object_id(user_id, "user_id")
    if amount is None or amount <= 0:
        raise ValidationError("Invalid withdrawal amount")
    amount = round_money(amount)

    withdrawal = {
        "_id": ObjectId(),
        "user_id": user_id,
        "order_id": None,
        "amount": amount,
        "status": WITHDRAWAL_REQUESTED,
        "requested_at": now,
        "processed_at": None,
        "processed_by": None,
    }

    async with transaction(db) as session:
        await lock_funds(db, user_id, amount, reference_id=withdrawal["_id"], session=session)
        await db.withdrawals.insert_one(withdrawal, session=session)

    logger.info("WALLET_WITHDRAWAL_REQUESTED user=%s amount=%s", user_id, amount)
    return withdrawal


# ======================================================
# FINALISATION
# ======================================================

async def _close_withdrawal(db, withdrawal: dict, to_status: str, now: datetime, processed_by, reason, session):
    # guarded balance move first: a failure leaves the request untouched
    move = finalize_locked if to_status == WITHDRAWAL_COMPLETED else release_locked
    await move(
        db,
        withdrawal["user_id"],
        withdrawal["amount"],
        order_id=withdrawal.get("order_id"),
        reference_id=withdrawal["_id"],
        session=session,
    )

    update = {"$set": {
        "status": to_status,
        "processed_at": now,
        "processed_by": processed_by,
        "rejection_reason": reason,
    }}
    if to_status == WITHDRAWAL_REJECTED:
        # frees the unique (order, user) slot so the commission can be requested again
        update["$unset"] = {"order_user_key": ""}

    result = await db.withdrawals.update_one(
        {"_id": withdrawal["_id"], "status": WITHDRAWAL_REQUESTED},
        update,
        session=session,
    )
    if result.modified_count != 1:
        raise Conflict("Withdrawal request has already been processed")


async def decide_withdrawal(
    db,
    withdrawal_id,
    action: str,
    admin_id=None,
    reason: str | None = None,
    now: datetime | None = None,
) -> dict:
    if action not in ("approve", "reject"):
        raise ValidationError("Action must be approve or reject")

    withdrawal_id = parse_object_id(withdrawal_id, "withdrawal_id")
    now = now or datetime.utcnow()

    withdrawal = await db.withdrawals.find_one({"_id": withdrawal_id})
    if not withdrawal:
        raise NotFound("Withdrawal request not found")
    if withdrawal["status"] != WITHDRAWAL_REQUESTED:
        raise Conflict("Withdrawal request has already been processed")

    to_status = WITHDRAWAL_COMPLETED if action == "approve" else WITHDRAWAL_REJECTED
    reason = reason or ("Withdrawal rejected" if action == "reject" else None)

    async with transaction(db) as session:
        await _close_withdrawal(db, withdrawal, to_status, now, admin_id, reason, session)
        await log_audit(
            db,
            actor_id=admin_id,
            actor_role="admin",
            action=WITHDRAWAL_APPROVED if action == "approve" else AUDIT_WITHDRAWAL_REJECTED,
            metadata={
                "withdrawal_id": str(withdrawal_id),
                "user_id": str(withdrawal["user_id"]),
                "amount": withdrawal["amount"],
                "reason": reason,
            },
            session=session,
        )

    withdrawal.update({
        "status": to_status,
        "processed_at": now,
        "processed_by": admin_id,
        "rejection_reason": reason,
    })
    return withdrawal


async def process_pending_withdrawals(db, now: datetime | None = None) -> dict:
    """
    Scheduled sweep: finalise every requested order withdrawal while the
    window is open. One bad item never aborts the batch.
    """
    now = now or datetime.utcnow()
    window = compute_window(now)
    if not window["is_active"]:
        return {"processed": 0, "failed": 0, "total": 0, "message": "Not in withdrawal window"}

    pending = await db.withdrawals.find({
        "status": WITHDRAWAL_REQUESTED,
        "order_id": {"$ne": None},
    }).sort("requested_at", 1).to_list(None)

    processed = 0
    failed = 0
    for withdrawal in pending:
        try:
            async with transaction(db) as session:
                await _close_withdrawal(db, withdrawal, WITHDRAWAL_COMPLETED, now, "system", None, session)
            processed += 1
        except Exception:
            failed += 1
            logger.exception("WITHDRAWAL_SWEEP_ERROR withdrawal=%s", withdrawal.get("_id"))

    logger.info("WITHDRAWAL_SWEEP processed=%s failed=%s total=%s", processed, failed, len(pending))
    return {
        "processed": processed,
        "failed": failed,
        "total": len(pending),
        "message": f"Processed {processed} withdrawal(s)",
    }


# ======================================================
# READS
# ======================================================

async def get_withdrawal_history(db, user_id, status: str | None = None, page: int = 1, limit: int = 10) -> list:
    query = {"user_id": parse_object_id(user_id, "user_id")}
    if status:
        query["status"] = status

    page = max(page, 1)
    return (
        await db.withdrawals
        .find(query)
        .sort("requested_at", -1)
        .skip((page - 1) * limit)
        .limit(limit)
        .to_list(limit)
    )
