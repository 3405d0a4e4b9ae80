# backend/config/constants.py

# -----------------------------
# COMMISSION RATE TABLE (percent)
# -----------------------------
from config.env import SHARING_PERIOD_DAYS, WITHDRAWAL_WINDOW_DAYS

DEFAULT_DIRECT_RATE = 12              # used when no tier matches
INDIRECT_RATIO = 0.5                  # indirect = direct * ratio when unset

COMMISSION_TIERS = [
    {"min_amount": 0, "direct_rate": 12, "indirect_rate": 6},
    {"min_amount": 10000, "direct_rate": 10, "indirect_rate": 5},
    {"min_amount": 50000, "direct_rate": 8, "indirect_rate": 4},
]

# -----------------------------
# REFERRAL SPLIT (percent of sale amount)
# -----------------------------

SHARING_SELF_RATE = 5
NON_SHARING_SELF_RATE = 10
DIRECT_REFERRER_RATE = 5
INDIRECT_REFERRER_RATE = 5

SHARING_PERIOD = SHARING_PERIOD_DAYS  # days from referred_by.date

# -----------------------------
# LEDGER ENUMS
# -----------------------------

TIER_SELF = "self"
TIER_DIRECT = "direct"
TIER_INDIRECT = "indirect"
TIER_MARKETER = "marketer"

CHANNEL_REFERRAL = "referral"
CHANNEL_DELIVERY = "delivery"

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

COMMISSION_STATUSES = {STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED}
TERMINAL_STATUSES = {STATUS_COMPLETED, STATUS_CANCELLED}

# -----------------------------
# BALANCE FIELDS (users.commission_balance.*)
# -----------------------------

BALANCE_PENDING = "pending"
BALANCE_AVAILABLE = "available"
BALANCE_LOCKED = "locked"
BALANCE_LIFETIME = "lifetime"
BALANCE_WITHDRAWN = "total_withdrawn"

BALANCE_FIELDS = (
    BALANCE_PENDING,
    BALANCE_AVAILABLE,
    BALANCE_LOCKED,
    BALANCE_LIFETIME,
    BALANCE_WITHDRAWN,
)

# -----------------------------
# WITHDRAWALS
# -----------------------------

WITHDRAWAL_WINDOW_LENGTH = WITHDRAWAL_WINDOW_DAYS   # last N days of month

WITHDRAWAL_REQUESTED = "requested"
WITHDRAWAL_COMPLETED = "completed"
WITHDRAWAL_REJECTED = "rejected"
