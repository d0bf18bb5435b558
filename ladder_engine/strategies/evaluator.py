"""
Target ladder evaluator: a pure state machine for one open position.

For an order on leg i the protective stop is legs[i].stoploss_percent and the
pursued target is legs[i + 1].target_percent (or legs[i].target_percent on the
final leg). All percentages are measured from the original entry price.
Boundaries are compared as prices, the way the order book would see them.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Union

from ladder_engine.core.types import Direction, Order, OrderStatus, PricePoint, Side


@dataclass(frozen=True)
class Hold:
    pass


@dataclass(frozen=True)
class AdvanceLeg:
    leg_index: int
    price: float  # level that was reached


@dataclass(frozen=True)
class Close:
    outcome: OrderStatus
    price: float
    reason: str


Decision = Union[Hold, AdvanceLeg, Close]
HOLD = Hold()


def signed_move_percent(side: Side, entry_price: float, price: float) -> float:
    """Percentage move from entry, positive when in the position's favor."""
    if side is Side.BUY:
        return (price - entry_price) * 100 / entry_price
    return (entry_price - price) * 100 / entry_price


def boundary_price(side: Side, entry_price: float, percent: float) -> float:
    """Price at which the side-adjusted move equals percent."""
    if side is Side.BUY:
        return entry_price + (percent * entry_price) / 100
    return entry_price - (percent * entry_price) / 100


def _extremes(side: Side, sample: PricePoint) -> tuple[float, float]:
    """(adverse, favorable) prices within the sample."""
    high = sample.high if sample.high is not None else sample.price
    low = sample.low if sample.low is not None else sample.price
    return (low, high) if side is Side.BUY else (high, low)


def _at_or_below_stop(side: Side, price: float, level: float) -> bool:
    return price <= level if side is Side.BUY else price >= level


def _at_or_past_target(side: Side, price: float, level: float) -> bool:
    return price >= level if side is Side.BUY else price <= level


def evaluate(order: Order, sample: PricePoint) -> Decision:
    """
    Decide what one price sample does to an open order. Never mutates the order.

    Stop is checked before target. A stop on a non-final leg expires the order;
    any boundary on the final leg completes the ladder (FINISHED).
    """
    if not order.is_open:
        return HOLD
    legs = order.ladder
    i = order.leg_index
    last = order.is_last_leg
    target_percent = legs[i].target_percent if last else legs[i + 1].target_percent
    stop_percent = legs[i].stoploss_percent

    adverse, favorable = _extremes(order.side, sample)
    stop_level = boundary_price(order.side, order.entry_price, stop_percent)
    target_level = boundary_price(order.side, order.entry_price, target_percent)

    if _at_or_below_stop(order.side, adverse, stop_level):
        fill = sample.price if _at_or_below_stop(order.side, sample.price, stop_level) else stop_level
        if last:
            return Close(OrderStatus.FINISHED, fill, "locked_profit" if stop_percent >= 0 else "stop_loss")
        return Close(OrderStatus.EXPIRED, fill, "stop_loss")

    if _at_or_past_target(order.side, favorable, target_level):
        if not last:
            return AdvanceLeg(i + 1, target_level)
        fill = sample.price if _at_or_past_target(order.side, sample.price, target_level) else target_level
        return Close(OrderStatus.FINISHED, fill, "take_profit")

    return HOLD


def resolve_side(direction: Direction, prev_open: float, prev_close: float) -> Side:
    """Root order side from the previous period's candle color."""
    up = prev_close > prev_open
    if direction is Direction.SAME:
        return Side.BUY if up else Side.SELL
    return Side.SELL if up else Side.BUY


def trigger_side(parent_side: Side, direction: Direction) -> Side:
    """Child order side relative to the parent order's side."""
    return parent_side if direction is Direction.SAME else parent_side.opposite()


def realized_pnl(side: Side, entry_price: float, exit_price: float, qty: float) -> float:
    """Gross profit or loss before fees."""
    if side is Side.BUY:
        return (exit_price - entry_price) * qty
    return (entry_price - exit_price) * qty


def net_profit(side: Side, entry_price: float, exit_price: float, qty: float, fee: float) -> float:
    return realized_pnl(side, entry_price, exit_price, qty) - fee


def exit_fee(entry_fee: float, qty: float, exit_price: float, maker_fee: float) -> float:
    """Total fee for a round trip: the entry fee plus maker fee on the exit notional."""
    return entry_fee + maker_fee * qty * exit_price


def stop_level(order: Order) -> Optional[float]:
    """Current protective stop price, or None when the order is closed."""
    if not order.is_open:
        return None
    return boundary_price(order.side, order.entry_price, order.active_leg.stoploss_percent)
