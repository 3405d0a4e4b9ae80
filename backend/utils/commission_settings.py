import logging
from datetime import datetime

from bson import ObjectId

from config.env import MARKETER_COMMISSION_PERCENT
from utils.audit import DEFAULT_RATE_UPDATED, USER_RATE_UPDATED, log_audit
from utils.errors import NotFound, ValidationError
from utils.guards import parse_object_id

logger = logging.getLogger(__name__)

# single document in `settings`; per-user overrides keyed by user id
SETTINGS_ID = "commission_rates"


def _check_rate(rate) -> float:
    if rate is None or not 0 <= rate <= 100:
        raise ValidationError("Invalid commission rate. Must be between 0 and 100.")
    return float(rate)


def _default_settings(now: datetime) -> dict:
    return {
        "_id": SETTINGS_ID,
        "default_rate": MARKETER_COMMISSION_PERCENT,
        "user_rates": {},
        "updated_by": None,
        "created_at": now,
        "updated_at": now,
    }


async def get_commission_settings(db) -> dict:
    """Current settings; the default document is created on first read."""
    settings = await db.settings.find_one({"_id": SETTINGS_ID})
    if settings:
        return settings

    settings = _default_settings(datetime.utcnow())
    await db.settings.update_one(
        {"_id": SETTINGS_ID},
        {"$setOnInsert": {k: v for k, v in settings.items() if k != "_id"}},
        upsert=True,
    )
    return await db.settings.find_one({"_id": SETTINGS_ID})


async def update_default_rate(db, rate: float, actor_id=None) -> dict:
    rate = _check_rate(rate)
    now = datetime.utcnow()

    await db.settings.update_one(
        {"_id": SETTINGS_ID},
        {
            "$set": {"default_rate": rate, "updated_by": actor_id, "updated_at": now},
            "$setOnInsert": {"user_rates": {}, "created_at": now},
        },
        upsert=True,
    )
    await log_audit(
        db,
        actor_id=actor_id,
        actor_role="admin",
        action=DEFAULT_RATE_UPDATED,
        metadata={"rate": rate},
    )

    logger.info("COMMISSION_DEFAULT_RATE rate=%s", rate)
    return await get_commission_settings(db)


async def set_user_rate(db, user_id, rate: float, actor_id=None) -> dict:
    """Override the default rate for one user."""
    user_id = parse_object_id(user_id, "user_id")
    rate = _check_rate(rate)

    if not await db.users.find_one({"_id": user_id}, {"_id": 1}):
        raise NotFound("User not found")

    now = datetime.utcnow()
    override = {"rate": rate, "updated_by": actor_id, "updated_at": now}
    await db.settings.update_one(
        {"_id": SETTINGS_ID},
        {
            "$set": {f"user_rates.{user_id}": override, "updated_at": now},
            "$setOnInsert": {"default_rate": MARKETER_COMMISSION_PERCENT, "created_at": now},
        },
        upsert=True,
    )
    await log_audit(
        db,
        actor_id=actor_id,
        actor_role="admin",
        action=USER_RATE_UPDATED,
        metadata={"user_id": str(user_id), "rate": rate},
    )

    logger.info("COMMISSION_USER_RATE user=%s rate=%s", user_id, rate)
    return override


async def get_user_rate(db, user_id: ObjectId, session=None) -> float:
    settings = await db.settings.find_one({"_id": SETTINGS_ID}, session=session)
    if not settings:
        return MARKETER_COMMISSION_PERCENT

    override = (settings.get("user_rates") or {}).get(str(user_id))
    if override:
        return override["rate"]
    return settings.get("default_rate", MARKETER_COMMISSION_PERCENT)
