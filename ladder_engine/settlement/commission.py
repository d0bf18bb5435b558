"""
Commission maths. Stored percentages may be whole percents (30) or fractions
(0.30); anything above 1 is read as a whole percent.
"""

from __future__ import annotations
from typing import TYPE_CHECKING, Optional, Tuple

if TYPE_CHECKING:
    from ladder_engine.settlement.models import Voucher


def normalize_percent(value: float) -> float:
    """30 -> 0.30, 0.30 -> 0.30. Negative values count as 0."""
    if value is None or value <= 0:
        return 0.0
    return value / 100.0 if value > 1 else float(value)


def commission_for(net_profit: float, admin_percent: float, referral_percent: float) -> float:
    """Commission owed on a net profit. Zero when there is no profit."""
    if net_profit <= 0:
        return 0.0
    return net_profit * (normalize_percent(admin_percent) + normalize_percent(referral_percent))


def apply_voucher(
    admin_percent: float,
    referral_percent: float,
    voucher: Optional["Voucher"],
    now_ms: int,
) -> Tuple[float, float]:
    """
    Effective (admin, referral) fractions after the user's voucher.

    DC: voucher.value percentage points come off the total, split pro rata
    between admin and referral. DCP: both are scaled by 1 - value/100.
    Results are clamped at 0 and rounded to 4 decimals.
    """
    admin = normalize_percent(admin_percent)
    referral = normalize_percent(referral_percent)

    if voucher is not None and voucher.is_usable(now_ms):
        if voucher.type == "DC":
            total = admin + referral
            if total > 0:
                cut = voucher.value / 100.0
                admin, referral = admin - cut * admin / total, referral - cut * referral / total
        elif voucher.type == "DCP":
            factor = 1 - voucher.value / 100.0
            admin, referral = admin * factor, referral * factor

    return round(max(admin, 0.0), 4), round(max(referral, 0.0), 4)
