"""
Core data types: tokens, ladder legs, strategies, price samples, orders and ledger entries.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional, Tuple

from ladder_engine.core.errors import StatusTransitionError


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    def opposite(self) -> "Side":
        return Side.SELL if self is Side.BUY else Side.BUY


class Direction(str, Enum):
    """Side policy relative to the previous candle (roots) or the parent order (triggers)."""
    SAME = "SAME"
    OPPOSITE = "OPPOSITE"


class TriggerRule(str, Enum):
    DEFAULT = "DEFAULT"
    FIVE_SAME_COLOR = "FIVE_SAME_COLOR"


class OrderStatus(str, Enum):
    ACTIVE = "ACTIVE"
    FINISHED = "FINISHED"
    EXPIRED = "EXPIRED"


class LedgerEvent(str, Enum):
    OPEN = "OPEN"
    ADVANCE = "ADVANCE"
    CLOSE = "CLOSE"


@dataclass(frozen=True)
class Token:
    """Tradable instrument. Immutable once referenced by an order."""
    name: str
    stable: str = "USDT"
    min_qty: float = 0.001
    leverage: int = 1
    active: bool = True

    @property
    def symbol(self) -> str:
        return self.name + self.stable


@dataclass(frozen=True)
class Target:
    """One ladder leg, scoped to a strategy+token pair. Percentages are moves from entry."""
    strategy_id: int
    token: str
    target_percent: float
    stoploss_percent: float
    id: Optional[int] = None


@dataclass(frozen=True)
class Strategy:
    """Named ladder policy. `ladders` maps token name to its ordered legs."""
    id: int
    name: str
    contribution: float
    direction: Direction = Direction.SAME
    close_before_boundary: bool = False
    parent_id: Optional[int] = None
    trigger_rule: TriggerRule = TriggerRule.DEFAULT
    active: bool = True
    ladders: Mapping[str, Tuple[Target, ...]] = field(default_factory=dict)

    @property
    def is_trigger(self) -> bool:
        return self.parent_id is not None

    def ladder(self, token: str) -> Tuple[Target, ...]:
        return tuple(self.ladders.get(token, ()))


@dataclass(frozen=True)
class PricePoint:
    """Price sample. `price` is the close for candles; open/high/low are optional."""
    timestamp: int  # epoch ms
    price: float
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None

    @property
    def entry_price(self) -> float:
        return self.open if self.open is not None else self.price


@dataclass
class Order:
    """Open or closed position. Status moves ACTIVE -> FINISHED | EXPIRED only."""
    order_id: int
    side: Side
    entry_price: float
    qty: float
    budget: float
    strategy_id: int
    token: str
    ladder: Tuple[Target, ...]
    leverage: int = 1
    fee: float = 0.0
    leg_index: int = 0
    mark_price: Optional[float] = None
    net_profit: float = 0.0
    status: OrderStatus = OrderStatus.ACTIVE
    opened_at: Optional[int] = None
    closed_at: Optional[int] = None
    user_id: Optional[int] = None
    bill_id: Optional[int] = None
    is_trigger: bool = False
    exit_reason: str = ""

    @property
    def active_leg(self) -> Target:
        return self.ladder[self.leg_index]

    @property
    def is_open(self) -> bool:
        return self.status is OrderStatus.ACTIVE

    @property
    def is_last_leg(self) -> bool:
        return self.leg_index == len(self.ladder) - 1

    def advance_to(self, leg_index: int) -> None:
        if not self.is_open:
            raise StatusTransitionError(f"order {self.order_id} is {self.status.value}, cannot advance")
        if not 0 <= leg_index < len(self.ladder) or leg_index <= self.leg_index:
            raise StatusTransitionError(f"order {self.order_id}: invalid leg {leg_index}")
        self.leg_index = leg_index

    def close(
        self,
        status: OrderStatus,
        exit_price: float,
        net_profit: float,
        fee: float,
        closed_at: Optional[int] = None,
        reason: str = "",
    ) -> None:
        """Move to a terminal status. Terminal orders never transition again."""
        if not self.is_open:
            raise StatusTransitionError(f"order {self.order_id} already {self.status.value}")
        if status is OrderStatus.ACTIVE:
            raise StatusTransitionError("close() requires a terminal status")
        self.status = status
        self.mark_price = exit_price
        self.net_profit = net_profit
        self.fee = fee
        self.closed_at = closed_at
        self.exit_reason = reason


@dataclass(frozen=True)
class LedgerEntry:
    """Immutable trade ledger record. `pnl` is set on CLOSE events only."""
    timestamp: int
    order_id: int
    strategy_id: int
    event: LedgerEvent
    side: Side
    price: float
    qty: float
    leg_index: int
    pnl: Optional[float] = None
    fee: float = 0.0
    status: OrderStatus = OrderStatus.ACTIVE
    reason: str = ""

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "orderId": self.order_id,
            "strategyId": self.strategy_id,
            "event": self.event.value,
            "side": self.side.value,
            "price": self.price,
            "quantity": self.qty,
            "legIndex": self.leg_index,
            "pnl": self.pnl,
            "fee": self.fee,
            "status": self.status.value,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class EquityPoint:
    """Running capital (available + committed) after a ledger event."""
    timestamp: int
    value: float
