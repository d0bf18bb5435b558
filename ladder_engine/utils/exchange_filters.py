"""Lot size helpers from exchange info and token minimum quantities."""

from __future__ import annotations
import math
from typing import Optional


def parse_symbol_filters(symbol_info: Optional[dict]) -> tuple[float, float, float]:
    """
    Extract min_qty, step_size (lot_step), tick_size from symbol filters.
    Returns (min_qty, lot_step, price_tick). Uses defaults if symbol_info is None.
    """
    min_qty = 0.001
    lot_step = 0.001
    price_tick = 0.01
    if not symbol_info:
        return min_qty, lot_step, price_tick
    for f in symbol_info.get("filters", []):
        if f.get("filterType") == "LOT_SIZE":
            min_qty = float(f.get("minQty", min_qty))
            lot_step = float(f.get("stepSize", lot_step))
        if f.get("filterType") == "PRICE_FILTER":
            price_tick = float(f.get("tickSize", price_tick))
    return min_qty, lot_step, price_tick


def precision_digits(value: float) -> int:
    """Number of decimals in value as written (0.001 -> 3, 1 -> 0)."""
    if not math.isfinite(value):
        return 0
    text = repr(float(value))
    if "e-" in text:
        mantissa, exp = text.split("e-")
        return int(exp) + (len(mantissa.split(".")[1]) if "." in mantissa else 0)
    whole, _, frac = text.partition(".")
    frac = frac.rstrip("0")
    return len(frac)


def round_quantity(qty: float, min_qty: float) -> float:
    """Truncate qty to the precision of min_qty; return 0 if below min_qty."""
    if qty <= 0:
        return 0.0
    digits = precision_digits(min_qty)
    scale = 10 ** digits
    # nudge absorbs binary noise such as 0.3 / 0.001 == 299.99999999999994
    rounded = math.floor(qty * scale + 1e-9) / scale
    if rounded < min_qty:
        return 0.0
    return round(rounded, digits)
