from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure

from utils.idempotency import IDEMPOTENCY_TTL_SECONDS


def _normalize_key_pairs(keys):
    return [(k, v) for k, v in keys]


async def _create_index_safe(collection, keys, **kwargs):
    """
    Create index safely.
    If Mongo reports IndexOptionsConflict/IndexKeySpecsConflict for same key pattern,
    drop the conflicting index and recreate with desired options.
    """
    desired_key = _normalize_key_pairs(keys)
    desired_name = kwargs.get("name")
    try:
        await collection.create_index(keys, **kwargs)
        return
    except OperationFailure as e:
        if getattr(e, "code", None) not in {85, 86}:
            raise

        conflicting_names = []
        async for idx in collection.list_indexes():
            idx_key = _normalize_key_pairs(list(idx.get("key", {}).items()))
            if idx_key == desired_key:
                idx_name = idx.get("name")
                if idx_name and idx_name != desired_name:
                    conflicting_names.append(idx_name)

        for idx_name in conflicting_names:
            await collection.drop_index(idx_name)

        await collection.create_index(keys, **kwargs)


async def ensure_indexes(db):
    # Users
    await _create_index_safe(
        db.users,
        [("referred_by.user_id", ASCENDING)],
        name="users_referred_by_idx",
        sparse=True,
    )
    await _create_index_safe(
        db.users,
        [("role", ASCENDING), ("is_active", ASCENDING), ("assigned_orders_count", ASCENDING)],
        name="users_marketer_load_idx",
    )

    # Orders
    await _create_index_safe(
        db.orders,
        [("status", ASCENDING), ("assignment_expires_at", ASCENDING)],
        name="orders_assignment_expiry_idx",
    )
    await _create_index_safe(
        db.orders,
        [("buyer_id", ASCENDING), ("created_at", DESCENDING)],
        name="orders_buyer_created_at_idx",
    )

    # Commission ledger
    await _create_index_safe(
        db.commission_transactions,
        [("beneficiary_id", ASCENDING), ("order_id", ASCENDING), ("channel", ASCENDING)],
        name="commission_beneficiary_order_unique",
        unique=True,
    )
    await _create_index_safe(
        db.commission_transactions,
        [("beneficiary_id", ASCENDING), ("status", ASCENDING), ("created_at", DESCENDING)],
        name="commission_beneficiary_status_idx",
    )
    await _create_index_safe(
        db.commission_transactions,
        [("order_id", ASCENDING), ("status", ASCENDING)],
        name="commission_order_status_idx",
    )

    # Seasonal promotions
    await _create_index_safe(
        db.seasonal_promotions,
        [("name", ASCENDING)],
        name="seasonal_promotions_name_unique",
        unique=True,
    )
    await _create_index_safe(
        db.seasonal_promotions,
        [("start_date", ASCENDING), ("end_date", ASCENDING)],
        name="seasonal_promotions_range_idx",
    )

    # Withdrawals
    await _create_index_safe(
        db.withdrawals,
        [("order_user_key", ASCENDING)],
        name="withdrawals_order_user_unique",
        unique=True,
        sparse=True,
    )
    await _create_index_safe(
        db.withdrawals,
        [("status", ASCENDING), ("requested_at", ASCENDING)],
        name="withdrawals_status_requested_at_idx",
    )
    await _create_index_safe(
        db.withdrawals,
        [("user_id", ASCENDING), ("requested_at", DESCENDING)],
        name="withdrawals_user_requested_at_idx",
    )

    # Idempotency
    await _create_index_safe(
        db.idempotency_keys,
        [("key", ASCENDING), ("scope", ASCENDING)],
        name="idempotency_key_scope_unique",
        unique=True,
    )
    await _create_index_safe(
        db.idempotency_keys,
        [("created_at", ASCENDING)],
        name="idempotency_ttl_idx",
        expireAfterSeconds=IDEMPOTENCY_TTL_SECONDS,
    )

    # Wallet ledger
    await _create_index_safe(
        db.wallet_ledger,
        [("user_id", ASCENDING), ("created_at", DESCENDING)],
        name="wallet_ledger_user_created_at_idx",
    )
    await _create_index_safe(
        db.wallet_ledger,
        [("reference_id", ASCENDING)],
        name="wallet_ledger_reference_idx",
        sparse=True,
    )

    # Timeline / audit
    await _create_index_safe(
        db.order_timeline,
        [("order_id", ASCENDING), ("created_at", ASCENDING)],
        name="order_timeline_order_created_idx",
    )
    await _create_index_safe(
        db.audit_logs,
        [("action", ASCENDING), ("created_at", DESCENDING)],
        name="audit_logs_action_created_idx",
    )
