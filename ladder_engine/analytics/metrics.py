"""
Performance metrics over a closed trade ledger and its equity curve.

Conventions (all pinned by tests):
  - Sharpe/Sortino use per-trade returns (net profit / committed budget),
    population std, annualized by sqrt(periods_per_year). 0.0 with < 2 returns
    or zero deviation.
  - Max drawdown is reported as a positive absolute amount and a positive
    percent of the running peak.
  - Win rate is a fraction in [0, 1].
  - Profit factor is +inf with winners and no losers, 0.0 with no winners.
  - An empty ledger yields all-zero metrics.
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np


@dataclass
class PerformanceMetrics:
    """Aggregate performance metrics."""
    total_return: float
    total_return_pct: float
    sharpe_ratio: float
    sortino_ratio: float
    max_drawdown: float
    max_drawdown_pct: float
    win_rate: float
    profit_factor: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    avg_trade: float
    best_trade: float
    worst_trade: float
    avg_win: float
    avg_loss: float

    def to_dict(self) -> dict:
        """camelCase payload. An infinite profit factor serializes as None."""
        pf: Optional[float] = self.profit_factor if math.isfinite(self.profit_factor) else None
        return {
            "totalReturn": self.total_return,
            "totalReturnPercent": self.total_return_pct,
            "sharpeRatio": self.sharpe_ratio,
            "sortinoRatio": self.sortino_ratio,
            "maxDrawdown": self.max_drawdown,
            "maxDrawdownPercent": self.max_drawdown_pct,
            "winRate": self.win_rate,
            "totalTrades": self.total_trades,
            "winningTrades": self.winning_trades,
            "losingTrades": self.losing_trades,
            "profitFactor": pf,
            "avgTrade": self.avg_trade,
            "bestTrade": self.best_trade,
            "worstTrade": self.worst_trade,
        }


def sharpe_ratio(returns: Sequence[float], risk_free_rate: float = 0.0, periods_per_year: float = 252.0) -> float:
    """Annualized Sharpe. returns = list of period (or per-trade) returns."""
    if len(returns) < 2:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    excess = arr - risk_free_rate / periods_per_year
    if excess.std() <= 1e-12:
        return 0.0
    return float(np.sqrt(periods_per_year) * excess.mean() / excess.std())


def sortino_ratio(returns: Sequence[float], risk_free_rate: float = 0.0, periods_per_year: float = 252.0) -> float:
    """Annualized Sortino (downside deviation)."""
    if len(returns) < 2:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    excess = arr - risk_free_rate / periods_per_year
    downside = arr[arr < 0]
    if len(downside) == 0 or downside.std() <= 1e-12:
        return sharpe_ratio(returns, risk_free_rate, periods_per_year)
    return float(np.sqrt(periods_per_year) * excess.mean() / downside.std())


def max_drawdown(equity: Sequence[float]) -> Tuple[float, float]:
    """Largest peak-to-trough decline: (absolute, percent of peak)."""
    if len(equity) == 0:
        return 0.0, 0.0
    arr = np.asarray(equity, dtype=float)
    peak = np.maximum.accumulate(arr)
    dd = peak - arr
    idx = int(np.argmax(dd))
    abs_dd = float(dd[idx])
    if abs_dd <= 0:
        return 0.0, 0.0
    pct = np.where(peak > 0, dd / np.where(peak > 0, peak, 1.0), 0.0)
    return abs_dd, float(np.max(pct)) * 100.0


def win_rate(pnls: Sequence[float]) -> float:
    """Fraction of trades with positive PnL."""
    if not pnls:
        return 0.0
    return sum(1 for p in pnls if p > 0) / len(pnls)


def profit_factor(pnls: Sequence[float]) -> float:
    """Gross profit / gross loss. +inf when there are wins and no losses, 0 without wins."""
    wins = sum(p for p in pnls if p > 0)
    losses = sum(-p for p in pnls if p < 0)
    if losses <= 0:
        return float("inf") if wins > 0 else 0.0
    return wins / losses


def expectancy(pnls: Sequence[float]) -> float:
    """Average PnL per trade."""
    if not pnls:
        return 0.0
    return sum(pnls) / len(pnls)


def compute_metrics(
    pnls: Sequence[float],
    equity: Sequence[float],
    initial_capital: float,
    returns: Optional[Sequence[float]] = None,
    risk_free_rate: float = 0.0,
    periods_per_year: float = 252.0,
) -> PerformanceMetrics:
    """
    Compute full metrics from closed-trade PnLs and the equity curve values.
    returns: optional per-trade returns for Sharpe; derived from the equity curve if None.
    """
    total_trades = len(pnls)
    if total_trades == 0:
        return PerformanceMetrics(
            total_return=0.0, total_return_pct=0.0, sharpe_ratio=0.0, sortino_ratio=0.0,
            max_drawdown=0.0, max_drawdown_pct=0.0, win_rate=0.0, profit_factor=0.0,
            total_trades=0, winning_trades=0, losing_trades=0, avg_trade=0.0,
            best_trade=0.0, worst_trade=0.0, avg_win=0.0, avg_loss=0.0,
        )
    final = equity[-1] if len(equity) else initial_capital + sum(pnls)
    total_return = final - initial_capital
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    if returns is None:
        arr = np.asarray(equity, dtype=float)
        prev = arr[:-1]
        rets: List[float] = (np.diff(arr) / np.where(prev != 0, prev, 1.0)).tolist()
    else:
        rets = list(returns)
    dd_abs, dd_pct = max_drawdown(equity)
    return PerformanceMetrics(
        total_return=total_return,
        total_return_pct=(total_return / initial_capital * 100.0) if initial_capital else 0.0,
        sharpe_ratio=sharpe_ratio(rets, risk_free_rate, periods_per_year),
        sortino_ratio=sortino_ratio(rets, risk_free_rate, periods_per_year),
        max_drawdown=dd_abs,
        max_drawdown_pct=dd_pct,
        win_rate=win_rate(pnls),
        profit_factor=profit_factor(pnls),
        total_trades=total_trades,
        winning_trades=len(wins),
        losing_trades=len(losses),
        avg_trade=expectancy(pnls),
        best_trade=max(pnls),
        worst_trade=min(pnls),
        avg_win=sum(wins) / len(wins) if wins else 0.0,
        avg_loss=sum(losses) / len(losses) if losses else 0.0,
    )
