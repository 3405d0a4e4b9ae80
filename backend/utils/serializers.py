from bson import ObjectId
from datetime import datetime


def serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, list):
        return [serialize_value(v) for v in value]
    return value


def serialize_doc(doc: dict) -> dict:
    if not doc:
        return doc
    return {k: serialize_value(v) for k, v in doc.items()}


def serialize_docs(docs):
    return [serialize_doc(d) for d in docs]


def serialize_commission(entry: dict) -> dict:
    return {
        "id": str(entry["_id"]),
        "beneficiary_id": serialize_value(entry["beneficiary_id"]),
        "order_id": serialize_value(entry["order_id"]),
        "product_id": serialize_value(entry.get("product_id")),
        "from_user_id": serialize_value(entry.get("from_user_id")),

        "tier": entry["tier"],
        "channel": entry["channel"],
        "rate": entry["rate"],
        "amount": entry["amount"],
        "formatted_amount": f"{entry['amount']:.2f}",
        "status": entry["status"],
        "promotion": entry.get("promotion"),

        "created_at": serialize_value(entry.get("created_at")),
        "completed_at": serialize_value(entry.get("completed_at")),
    }


def serialize_withdrawal(withdrawal: dict) -> dict:
    return {
        "id": str(withdrawal["_id"]),
        "user_id": serialize_value(withdrawal["user_id"]),
        "order_id": serialize_value(withdrawal.get("order_id")),
        "amount": withdrawal["amount"],
        "status": withdrawal["status"],
        "requested_at": serialize_value(withdrawal.get("requested_at")),
        "processed_at": serialize_value(withdrawal.get("processed_at")),
        "rejection_reason": withdrawal.get("rejection_reason"),
    }
