from datetime import datetime
from pymongo.errors import DuplicateKeyError

from utils.errors import Conflict

IDEMPOTENCY_TTL_SECONDS = 60 * 60 * 24 * 30  # 30 days
IN_PROGRESS_STALE_SECONDS = 60 * 10          # 10 minutes

SCOPE_REFERRAL_COMMISSION = "referral_commission"


async def reserve_idempotency_key(
    *,
    db,
    key: str,
    scope: str,
):
    """
    Reserve an idempotency key before doing the guarded work.

    Returns None when the caller now owns the key.
    Returns the stored result when the key already completed.
    Raises Conflict while another worker holds a fresh reservation.
    A stale or failed reservation is discarded so the work can be retried.
    """
    existing = await db.idempotency_keys.find_one({
        "key": key,
        "scope": scope,
    })

    if existing:
        if existing.get("status") == "completed":
            return existing.get("response")

        created_at = existing.get("created_at")
        age_seconds = (
            (datetime.utcnow() - created_at).total_seconds()
            if created_at else 0
        )
        if age_seconds <= IN_PROGRESS_STALE_SECONDS and existing.get("status") == "reserved":
            raise Conflict(f"{scope} for {key} is already in progress")

        await db.idempotency_keys.delete_one({"_id": existing["_id"]})

    try:
        await db.idempotency_keys.insert_one({
            "key": key,
            "scope": scope,
            "status": "reserved",
            "response": None,
            "created_at": datetime.utcnow(),
        })
    except DuplicateKeyError:
        # Concurrent request won the race
        concurrent = await db.idempotency_keys.find_one({"key": key, "scope": scope})
        if concurrent and concurrent.get("status") == "completed":
            return concurrent.get("response")
        raise Conflict(f"{scope} for {key} is already in progress")
    return None


async def complete_idempotency_key(
    *,
    db,
    key: str,
    scope: str,
    response: dict,
):
    await db.idempotency_keys.update_one(
        {"key": key, "scope": scope},
        {
            "$set": {
                "status": "completed",
                "response": response,
                "completed_at": datetime.utcnow(),
            }
        },
    )


async def fail_idempotency_key(
    *,
    db,
    key: str,
    scope: str,
    error: str,
):
    """
    Mark the key failed; the next reserve call discards it and retries.
    """
    await db.idempotency_keys.update_one(
        {"key": key, "scope": scope},
        {
            "$set": {
                "status": "failed",
                "error": error,
                "failed_at": datetime.utcnow(),
            }
        },
    )
