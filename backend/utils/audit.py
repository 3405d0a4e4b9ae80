from datetime import datetime

# Admin-facing actions recorded in audit_logs
PROMOTION_UPSERTED = "SEASONAL_PROMOTION_UPSERTED"
PROMOTION_DELETED = "SEASONAL_PROMOTION_DELETED"
COMMISSION_STATUS_CHANGED = "COMMISSION_STATUS_CHANGED"
WITHDRAWAL_APPROVED = "WITHDRAWAL_APPROVED"
WITHDRAWAL_REJECTED = "WITHDRAWAL_REJECTED"
DEFAULT_RATE_UPDATED = "COMMISSION_DEFAULT_RATE_UPDATED"
USER_RATE_UPDATED = "COMMISSION_USER_RATE_UPDATED"


async def log_audit(
    db,
    actor_id,
    actor_role: str,
    action: str,
    metadata: dict | None = None,
    session=None,
):
    await db.audit_logs.insert_one({
        "actor_id": str(actor_id) if actor_id else None,
        "actor_role": actor_role,
        "action": action,
        "metadata": metadata or {},
        "created_at": datetime.utcnow()
    }, session=session)
