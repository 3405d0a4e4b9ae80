import calendar
from datetime import datetime, time

from config.constants import WITHDRAWAL_WINDOW_LENGTH

# ======================================================
# WITHDRAWAL WINDOW
# ======================================================
# One rule only: the last WITHDRAWAL_WINDOW_LENGTH calendar days of
# every month, first day 00:00 through last day 23:59:59.999999.
# 30-day months -> 26..30, 31-day months -> 27..31, February -> 24..28
# (25..29 in leap years).


def compute_window(reference: datetime | None = None) -> dict:
    """
    Window containing `reference`, or the next one if `reference`
    falls before this month's window opens.
    """
    reference = reference or datetime.utcnow()
    last_day = calendar.monthrange(reference.year, reference.month)[1]
    first_day = last_day - WITHDRAWAL_WINDOW_LENGTH + 1

    available_from = datetime(reference.year, reference.month, first_day)
    available_until = datetime.combine(available_from.replace(day=last_day).date(), time.max)

    return {
        "available_from": available_from,
        "available_until": available_until,
        "is_active": available_from <= reference <= available_until,
    }


def is_window_open(now: datetime | None = None) -> bool:
    return compute_window(now)["is_active"]
