"""Shared builders for ladder, order and price series tests."""

from datetime import datetime, timezone

import pytest

from ladder_engine.core.types import Order, PricePoint, Side, Strategy, Target, Token
from ladder_engine.strategies.ladder import StrategyBook

DAY_MS = 24 * 60 * 60 * 1000
HOUR_MS = 60 * 60 * 1000
JAN_1_2024 = int(datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp() * 1000)


def legs(strategy_id, token, pairs):
    return tuple(Target(strategy_id, token, t, s) for t, s in pairs)


@pytest.fixture
def make_order():
    def _make(side=Side.BUY, entry=100.0, pairs=((0, -1.85), (0.6, 0.6)), leg_index=0, qty=1.0):
        return Order(
            order_id=1,
            side=side,
            entry_price=entry,
            qty=qty,
            budget=entry * qty,
            strategy_id=1,
            token="BTC",
            ladder=legs(1, "BTC", pairs),
            leg_index=leg_index,
        )
    return _make


@pytest.fixture
def make_strategy():
    def _make(sid=1, pairs=((0, -1.85), (0.6, 0.6)), token="BTC", **kwargs):
        kwargs.setdefault("contribution", 10)
        return Strategy(id=sid, name=f"s{sid}", ladders={token: legs(sid, token, pairs)}, **kwargs)
    return _make


@pytest.fixture
def tokens():
    return {"BTC": Token("BTC", min_qty=0.001), "ETH": Token("ETH", min_qty=0.001)}


@pytest.fixture
def book(make_strategy):
    return StrategyBook([make_strategy()])


def at(day, hour=0):
    """Epoch ms for 2024-01-01 + day days + hour hours (UTC)."""
    return JAN_1_2024 + day * DAY_MS + hour * HOUR_MS


def series(points):
    """[(day, hour, price), ...] -> PricePoints."""
    return [PricePoint(timestamp=at(d, h), price=p) for d, h, p in points]


def candles(rows):
    """[(day, hour, open, high, low, close), ...] -> OHLC PricePoints."""
    return [PricePoint(timestamp=at(d, h), price=c, open=o, high=hi, low=lo) for d, h, o, hi, lo, c in rows]
