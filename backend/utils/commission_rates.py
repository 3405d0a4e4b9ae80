from decimal import Decimal, ROUND_HALF_UP

from config.constants import (
    COMMISSION_TIERS,
    DEFAULT_DIRECT_RATE,
    INDIRECT_RATIO,
)


def round_money(value) -> float:
    """Round a monetary value to 2 decimal places, half-up."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def percent_of(amount: float, rate: float) -> float:
    return round_money(Decimal(str(amount)) * Decimal(str(rate)) / Decimal(100))


# ==============================
# Tier lookup
# ==============================

def _default_tier() -> dict:
    return {
        "min_amount": None,
        "direct_rate": DEFAULT_DIRECT_RATE,
        "indirect_rate": DEFAULT_DIRECT_RATE * INDIRECT_RATIO,
    }


def get_rates(volume: float = 0, tiers: list | None = None) -> dict:
    """
    Return {"direct_rate", "indirect_rate"} (percent) for a cumulative
    sales volume. Lower tier bounds are inclusive.
    """
    tiers = COMMISSION_TIERS if tiers is None else tiers
    ordered = sorted(tiers, key=lambda t: t["min_amount"], reverse=True)

    tier = next((t for t in ordered if volume >= t["min_amount"]), None)
    if tier is None:
        tier = _default_tier()

    direct_rate = tier["direct_rate"]
    indirect_rate = tier.get("indirect_rate")
    if indirect_rate is None:
        indirect_rate = direct_rate * INDIRECT_RATIO

    return {
        "direct_rate": direct_rate,
        "indirect_rate": indirect_rate,
    }


def calculate_commission(
    sale_amount: float,
    volume: float = 0,
    is_direct: bool = True,
    tiers: list | None = None,
) -> dict:
    rates = get_rates(volume, tiers)
    rate = rates["direct_rate"] if is_direct else rates["indirect_rate"]

    return {
        "amount": percent_of(sale_amount, rate),
        "rate": rate,
        "is_direct": is_direct,
        "tier": rates,
    }
