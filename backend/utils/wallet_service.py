from datetime import datetime

from bson import ObjectId

from config.constants import (
    BALANCE_AVAILABLE,
    BALANCE_FIELDS,
    BALANCE_LIFETIME,
    BALANCE_LOCKED,
    BALANCE_PENDING,
    BALANCE_WITHDRAWN,
)
from utils.errors import InsufficientBalance, NotFound, ValidationError

# ==============================
# Ledger entry types (ENUM-LIKE)
# ==============================

ENTRY_COMMISSION_CREDIT = "COMMISSION_CREDIT"
ENTRY_COMMISSION_RELEASE = "COMMISSION_RELEASE"
ENTRY_COMMISSION_REVERSAL = "COMMISSION_REVERSAL"
ENTRY_WITHDRAWAL_LOCK = "WITHDRAWAL_LOCK"
ENTRY_WITHDRAWAL_PAID = "WITHDRAWAL_PAID"
ENTRY_WITHDRAWAL_RELEASE = "WITHDRAWAL_RELEASE"


def _balance_path(field: str) -> str:
    if field not in BALANCE_FIELDS:
        raise ValueError(f"Unknown balance field: {field}")
    return f"commission_balance.{field}"


def _check_amount(amount: float) -> float:
    if amount is None or amount < 0:
        raise ValidationError("Amount cannot be negative")
    return amount


# ==============================
# Core: Append-only ledger write
# ==============================

async def add_ledger_entry(
    db,
    user_id: ObjectId,
    entry_type: str,
    amount: float,
    from_field: str | None = None,
    to_field: str | None = None,
    order_id: ObjectId | None = None,
    reference_id: ObjectId | None = None,
    reason_code: str | None = None,
    session=None,
):
    entry = {
        "user_id": user_id,
        "order_id": order_id,
        "reference_id": reference_id,
        "entry_type": entry_type,
        "from_field": from_field,
        "to_field": to_field,
        "amount": amount,
        "reason_code": reason_code,
        "created_at": datetime.utcnow(),
    }

    await db.wallet_ledger.insert_one(entry, session=session)


# ==============================
# Balance primitives
# ==============================

async def _raise_for_missed_update(db, user_id, session=None):
    user = await db.users.find_one({"_id": user_id}, {"_id": 1}, session=session)
    if not user:
        raise NotFound("User not found")
    raise InsufficientBalance("Insufficient balance")


async def increment_balance(db, user_id: ObjectId, field: str, amount: float, session=None):
    _check_amount(amount)
    result = await db.users.update_one(
        {"_id": user_id},
        {"$inc": {_balance_path(field): amount}},
        session=session,
    )
    if result.matched_count == 0:
        raise NotFound("User not found")


async def decrement_balance(db, user_id: ObjectId, field: str, amount: float, session=None):
    _check_amount(amount)
    path = _balance_path(field)
    result = await db.users.update_one(
        {"_id": user_id, path: {"$gte": amount}},
        {"$inc": {path: -amount}},
        session=session,
    )
    if result.matched_count == 0:
        await _raise_for_missed_update(db, user_id, session=session)


async def credit_balance(
    db,
    user_id: ObjectId,
    field: str,
    amount: float,
    *,
    entry_type: str = ENTRY_COMMISSION_CREDIT,
    order_id: ObjectId | None = None,
    reference_id: ObjectId | None = None,
    reason_code: str | None = None,
    session=None,
):
    """
    Earnings credit: raises `field` and lifetime by the same amount.
    """
    _check_amount(amount)
    result = await db.users.update_one(
        {"_id": user_id},
        {"$inc": {
            _balance_path(field): amount,
            _balance_path(BALANCE_LIFETIME): amount,
        }},
        session=session,
    )
    if result.matched_count == 0:
        raise NotFound("User not found")

    await add_ledger_entry(
        db,
        user_id,
        entry_type,
        amount,
        to_field=field,
        order_id=order_id,
        reference_id=reference_id,
        reason_code=reason_code,
        session=session,
    )


async def reverse_credit(
    db,
    user_id: ObjectId,
    field: str,
    amount: float,
    *,
    order_id: ObjectId | None = None,
    reference_id: ObjectId | None = None,
    reason_code: str | None = None,
    session=None,
):
    _check_amount(amount)
    path = _balance_path(field)
    lifetime_path = _balance_path(BALANCE_LIFETIME)
    result = await db.users.update_one(
        {"_id": user_id, path: {"$gte": amount}, lifetime_path: {"$gte": amount}},
        {"$inc": {path: -amount, lifetime_path: -amount}},
        session=session,
    )
    if result.matched_count == 0:
        await _raise_for_missed_update(db, user_id, session=session)

    await add_ledger_entry(
        db,
        user_id,
        ENTRY_COMMISSION_REVERSAL,
        amount,
        from_field=field,
        order_id=order_id,
        reference_id=reference_id,
        reason_code=reason_code,
        session=session,
    )


async def move_balance(
    db,
    user_id: ObjectId,
    from_field: str,
    to_field: str,
    amount: float,
    *,
    entry_type: str,
    order_id: ObjectId | None = None,
    reference_id: ObjectId | None = None,
    reason_code: str | None = None,
    session=None,
):
    """
    Atomically move `amount` between two balance fields of one user.
    The guard on `from_field` makes the debit and credit a single
    document update: either both apply or neither does.
    """
    _check_amount(amount)
    from_path = _balance_path(from_field)
    to_path = _balance_path(to_field)

    result = await db.users.update_one(
        {"_id": user_id, from_path: {"$gte": amount}},
        {"$inc": {from_path: -amount, to_path: amount}},
        session=session,
    )
    if result.matched_count == 0:
        await _raise_for_missed_update(db, user_id, session=session)

    await add_ledger_entry(
        db,
        user_id,
        entry_type,
        amount,
        from_field=from_field,
        to_field=to_field,
        order_id=order_id,
        reference_id=reference_id,
        reason_code=reason_code,
        session=session,
    )


# ==============================
# Named movements
# ==============================

async def release_pending(db, user_id, amount, *, order_id=None, reference_id=None, session=None):
    await move_balance(
        db,
        user_id,
        BALANCE_PENDING,
        BALANCE_AVAILABLE,
        amount,
        entry_type=ENTRY_COMMISSION_RELEASE,
        order_id=order_id,
        reference_id=reference_id,
        reason_code="COMMISSION_MATURED",
        session=session,
    )


async def lock_funds(db, user_id, amount, *, order_id=None, reference_id=None, session=None):
    await move_balance(
        db,
        user_id,
        BALANCE_AVAILABLE,
        BALANCE_LOCKED,
        amount,
        entry_type=ENTRY_WITHDRAWAL_LOCK,
        order_id=order_id,
        reference_id=reference_id,
        reason_code="WITHDRAWAL_REQUESTED",
        session=session,
    )


async def finalize_locked(db, user_id, amount, *, order_id=None, reference_id=None, session=None):
    await move_balance(
        db,
        user_id,
        BALANCE_LOCKED,
        BALANCE_WITHDRAWN,
        amount,
        entry_type=ENTRY_WITHDRAWAL_PAID,
        order_id=order_id,
        reference_id=reference_id,
        reason_code="WITHDRAWAL_COMPLETED",
        session=session,
    )
    await db.users.update_one(
        {"_id": user_id},
        {"$set": {"commission_balance.last_withdrawal_at": datetime.utcnow()}},
        session=session,
    )


async def release_locked(db, user_id, amount, *, order_id=None, reference_id=None, session=None):
    await move_balance(
        db,
        user_id,
        BALANCE_LOCKED,
        BALANCE_AVAILABLE,
        amount,
        entry_type=ENTRY_WITHDRAWAL_RELEASE,
        order_id=order_id,
        reference_id=reference_id,
        reason_code="WITHDRAWAL_REJECTED",
        session=session,
    )


# ==============================
# Reads
# ==============================

async def get_wallet_balance(db, user_id: ObjectId) -> dict:
    user = await db.users.find_one({"_id": user_id}, {"commission_balance": 1})
    if not user:
        raise NotFound("User not found")

    balance = user.get("commission_balance") or {}
    result = {field: balance.get(field, 0) for field in BALANCE_FIELDS}
    result["last_withdrawal_at"] = balance.get("last_withdrawal_at")
    return result


async def get_wallet_summary(db, user_id: ObjectId) -> dict:
    pipeline = [
        {"$match": {"user_id": user_id}},
        {"$group": {
            "_id": "$entry_type",
            "amount": {"$sum": "$amount"},
        }},
    ]

    rows = await db.wallet_ledger.aggregate(pipeline).to_list(None)
    return {r["_id"]: r["amount"] for r in rows}


async def get_wallet(db, user_id: ObjectId, limit: int = 20) -> dict:
    balance = await get_wallet_balance(db, user_id)
    recent = (
        await db.wallet_ledger
        .find({"user_id": user_id}, {"_id": 0, "user_id": 0})
        .sort("created_at", -1)
        .limit(limit)
        .to_list(limit)
    )
    return {"balance": balance, "ledger": recent}
