import math

from bson import ObjectId
from bson.errors import InvalidId

from utils.errors import ValidationError

# -------------------------------
# ObjectId Guard
# -------------------------------

def parse_object_id(value, name: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {name}")


# -------------------------------
# Amount Guard
# -------------------------------

def assert_non_negative_amount(amount, name: str = "amount") -> float:
    if amount is None:
        raise ValidationError(f"{name} is required")
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name}")
    if not math.isfinite(value):
        raise ValidationError(f"Invalid {name}")
    if value < 0:
        raise ValidationError(f"{name} cannot be negative")
    return value
