"""Backtesting: ladder simulation driver, period candles and ledger replay."""

from ladder_engine.backtesting.engine import BacktestEngine, BacktestResult, BacktestRequest, run_many
from ladder_engine.backtesting.replay import LedgerReplay

__all__ = ["BacktestEngine", "BacktestResult", "BacktestRequest", "run_many", "LedgerReplay"]
