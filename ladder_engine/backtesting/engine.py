"""
Simulation driver: replays one token's price series through the target ladder
evaluator for a root strategy and its trigger children.

Per run state (capital, open positions, ledger) lives in a _RunState owned by a
single run() call, so independent runs can execute concurrently. No wall clock
or randomness is used on the simulation path; identical inputs give identical
ledgers.
"""

from __future__ import annotations
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ladder_engine.analytics.metrics import PerformanceMetrics, compute_metrics
from ladder_engine.backtesting.candles import PeriodIndex, aggregate_periods
from ladder_engine.core.errors import StrategyConfigError
from ladder_engine.core.types import (
    EquityPoint,
    LedgerEntry,
    LedgerEvent,
    Order,
    OrderStatus,
    PricePoint,
    Side,
    Strategy,
    Token,
)
from ladder_engine.data.provider import validate_series
from ladder_engine.risk.manager import CapitalManager
from ladder_engine.strategies.evaluator import (
    AdvanceLeg,
    Close,
    evaluate,
    exit_fee,
    net_profit,
    resolve_side,
    trigger_side,
)
from ladder_engine.strategies.ladder import StrategyBook
from ladder_engine.utils.timeframes import bucket_start, year_bounds

logger = logging.getLogger("ladder_engine.backtest")


@dataclass
class BacktestResult:
    """Backtest output: ledger, equity curve, closed orders and metrics."""
    token: str
    strategy_id: int
    initial_capital: float
    year: Optional[int] = None
    trades: Tuple[LedgerEntry, ...] = ()
    equity_curve: Tuple[EquityPoint, ...] = ()
    orders: Tuple[Order, ...] = ()
    metrics: Optional[PerformanceMetrics] = None
    skipped: int = 0

    @property
    def closing_trades(self) -> Tuple[LedgerEntry, ...]:
        return tuple(t for t in self.trades if t.event is LedgerEvent.CLOSE)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "token": self.token,
            "year": self.year,
            "strategyId": self.strategy_id,
            "initialCapital": self.initial_capital,
            "trades": [t.to_dict() for t in self.trades],
            "equityCurve": [{"timestamp": p.timestamp, "value": p.value} for p in self.equity_curve],
            "skipped": self.skipped,
        }
        if self.metrics is not None:
            payload.update(self.metrics.to_dict())
        return payload


@dataclass(frozen=True)
class BacktestRequest:
    token: str
    strategy_id: int
    samples: Sequence[PricePoint]
    year: Optional[int] = None
    initial_capital: Optional[float] = None


@dataclass
class _RunState:
    capital: CapitalManager
    open_orders: List[Order] = field(default_factory=list)
    closed: List[Order] = field(default_factory=list)
    ledger: List[LedgerEntry] = field(default_factory=list)
    equity: List[EquityPoint] = field(default_factory=list)
    skipped: int = 0
    _next_id: int = 1

    def next_id(self) -> int:
        oid = self._next_id
        self._next_id += 1
        return oid

    def record(self, entry: LedgerEntry) -> None:
        self.ledger.append(entry)
        self.equity.append(EquityPoint(timestamp=entry.timestamp, value=self.capital.equity))


class BacktestEngine:
    """
    Runs a root strategy (and its trigger children) over historical samples.
    Root positions open at the first sample of a period, sided by the previous
    period's candle; positions close through the ladder evaluator, at period
    boundaries (close_before_boundary) or at end of data.
    """

    def __init__(
        self,
        book: StrategyBook,
        tokens: Mapping[str, Token],
        initial_capital: float = 10000.0,
        timeframe: str = "1d",
        maker_fee: float = 0.0002,
        periods_per_year: float = 252.0,
        trend_lookback: int = 5,
    ):
        self.book = book
        self.tokens = dict(tokens)
        self.initial_capital = initial_capital
        self.timeframe = timeframe
        self.maker_fee = maker_fee
        self.periods_per_year = periods_per_year
        self.trend_lookback = trend_lookback

    def run(
        self,
        samples: Sequence[PricePoint],
        token: str,
        strategy_id: int,
        year: Optional[int] = None,
        initial_capital: Optional[float] = None,
    ) -> BacktestResult:
        """Replay samples (optionally restricted to one calendar year) and return the ledger."""
        token = token.upper()
        token_info = self.tokens.get(token)
        if token_info is None:
            raise StrategyConfigError(f"unknown token {token}")
        strategy = self.book.get(strategy_id)
        if strategy.is_trigger:
            raise StrategyConfigError(f"strategy {strategy_id} is a trigger strategy; backtest its parent")
        self.book.require_ladders(strategy_id, token)
        validate_series(samples)

        capital = self.initial_capital if initial_capital is None else initial_capital
        if year is not None:
            start, end = year_bounds(year)
            samples = [s for s in samples if start <= s.timestamp < end]
        if not samples:
            logger.info("No samples for %s strategy %d, empty result", token, strategy_id)
            return self._result(token, strategy_id, year, capital, _RunState(CapitalManager(capital)))

        periods = PeriodIndex(aggregate_periods(samples, self.timeframe))
        state = _RunState(CapitalManager(capital))
        state.equity.append(EquityPoint(timestamp=samples[0].timestamp, value=capital))

        prev_sample: Optional[PricePoint] = None
        prev_bucket: Optional[int] = None
        for sample in samples:
            bucket = bucket_start(sample.timestamp, self.timeframe)
            # triggers open mid-sample at the exit price; roots are checked on their opening candle
            just_opened: set = set()
            if bucket != prev_bucket:
                if prev_sample is not None and strategy.close_before_boundary:
                    for order in list(state.open_orders):
                        self._close(state, order, OrderStatus.FINISHED, prev_sample.price, prev_sample.timestamp, "boundary")
                if not state.open_orders:
                    prev_candle = periods.previous(bucket)
                    if prev_candle is not None:
                        side = resolve_side(strategy.direction, prev_candle.open, prev_candle.close)
                        self._open(state, strategy, token_info, side, sample.entry_price, sample.timestamp, False)

            for order in list(state.open_orders):
                if order.order_id in just_opened:
                    continue
                decision = evaluate(order, sample)
                order.mark_price = sample.price
                if isinstance(decision, AdvanceLeg):
                    order.advance_to(decision.leg_index)
                    state.record(self._entry(order, LedgerEvent.ADVANCE, decision.price, sample.timestamp))
                elif isinstance(decision, Close):
                    self._close(state, order, decision.outcome, decision.price, sample.timestamp, decision.reason)
                    if decision.outcome is OrderStatus.FINISHED and not order.is_trigger:
                        child = self._spawn_trigger(state, order, token_info, periods.trend(bucket, self.trend_lookback),
                                                    decision.price, sample.timestamp)
                        if child is not None:
                            just_opened.add(child.order_id)

            prev_sample, prev_bucket = sample, bucket

        last = samples[-1]
        for order in list(state.open_orders):
            self._close(state, order, OrderStatus.FINISHED, last.price, last.timestamp, "end_of_data")

        return self._result(token, strategy_id, year, capital, state)

    def _spawn_trigger(
        self, state: _RunState, parent: Order, token: Token, trend: str, price: float, ts: int
    ) -> Optional[Order]:
        """Open the selected child strategy after a root order completes its ladder."""
        child = self.book.select_trigger(parent.strategy_id, trend)
        if child is None:
            return None
        side = trigger_side(parent.side, child.direction)
        logger.debug("Trigger strategy %d (%s, trend %s) after order %d", child.id, side.value, trend, parent.order_id)
        return self._open(state, child, token, side, price, ts, True)

    def _open(
        self, state: _RunState, strategy: Strategy, token: Token, side: Side, price: float, ts: int, is_trigger: bool
    ) -> Optional[Order]:
        alloc = state.capital.allocate(strategy.contribution, price, token)
        if not alloc.allowed:
            state.skipped += 1
            logger.info("Skip opening %s %s for strategy %d at %d: %s", side.value, token.name, strategy.id, ts, alloc.reason)
            return None
        order = Order(
            order_id=state.next_id(),
            side=side,
            entry_price=price,
            qty=alloc.qty,
            budget=alloc.budget,
            strategy_id=strategy.id,
            token=token.name,
            ladder=strategy.ladder(token.name),
            leverage=token.leverage,
            fee=self.maker_fee * alloc.qty * price,
            mark_price=price,
            opened_at=ts,
            is_trigger=is_trigger,
        )
        state.open_orders.append(order)
        state.record(self._entry(order, LedgerEvent.OPEN, price, ts))
        return order

    def _close(self, state: _RunState, order: Order, status: OrderStatus, price: float, ts: int, reason: str) -> None:
        fee = exit_fee(order.fee, order.qty, price, self.maker_fee)
        net = net_profit(order.side, order.entry_price, price, order.qty, fee)
        order.close(status, price, net, fee, closed_at=ts, reason=reason)
        state.capital.release(order.budget, net)
        state.open_orders.remove(order)
        state.closed.append(order)
        state.record(self._entry(order, LedgerEvent.CLOSE, price, ts, pnl=net))

    @staticmethod
    def _entry(order: Order, event: LedgerEvent, price: float, ts: int, pnl: Optional[float] = None) -> LedgerEntry:
        return LedgerEntry(
            timestamp=ts,
            order_id=order.order_id,
            strategy_id=order.strategy_id,
            event=event,
            side=order.side,
            price=price,
            qty=order.qty,
            leg_index=order.leg_index,
            pnl=pnl,
            fee=order.fee,
            status=order.status,
            reason=order.exit_reason,
        )

    def _result(self, token: str, strategy_id: int, year: Optional[int], capital: float, state: _RunState) -> BacktestResult:
        pnls = [o.net_profit for o in state.closed]
        returns = [o.net_profit / o.budget for o in state.closed if o.budget > 0]
        metrics = compute_metrics(
            pnls,
            [p.value for p in state.equity],
            capital,
            returns=returns,
            periods_per_year=self.periods_per_year,
        )
        return BacktestResult(
            token=token,
            strategy_id=strategy_id,
            initial_capital=capital,
            year=year,
            trades=tuple(state.ledger),
            equity_curve=tuple(state.equity),
            orders=tuple(state.closed),
            metrics=metrics,
            skipped=state.skipped,
        )


def run_many(engine: BacktestEngine, requests: Sequence[BacktestRequest], max_workers: int = 4) -> List[BacktestResult]:
    """Run independent backtests concurrently. Results keep the request order."""
    def _one(req: BacktestRequest) -> BacktestResult:
        return engine.run(req.samples, req.token, req.strategy_id, year=req.year, initial_capital=req.initial_capital)

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(_one, requests))
