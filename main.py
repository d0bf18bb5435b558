#!/usr/bin/env python3
"""
Ladder Engine CLI: backtest | settle
Usage:
  python main.py backtest --token BTC --year 2024 --strategy 1 [--capital 10000] [--source file|binance] [--json out.json]
  python main.py settle --orders orders.json [--config config.yaml]
"""

from __future__ import annotations
import argparse
import json
import logging
import math
import sys
from pathlib import Path

# Project root
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ladder_engine.core.config import load_config
from ladder_engine.core.errors import LadderEngineError
from ladder_engine.core.logger import setup_logging
from ladder_engine.analytics.metrics import expectancy
from ladder_engine.backtesting.engine import BacktestEngine
from ladder_engine.data.files import FilePriceSeriesProvider
from ladder_engine.settlement.aggregator import SettlementAggregator
from ladder_engine.settlement.repository import InMemorySettlementRepository
from ladder_engine.strategies.ladder import load_strategy_book
from ladder_engine.utils.telegram import send_telegram

logger = logging.getLogger("ladder_engine")


def run_backtest(args: argparse.Namespace) -> int:
    """Backtest one root strategy on one token for one calendar year."""
    config = load_config(args.config, ROOT)
    setup_logging(config.log_level, config.log_dir, config.log_file)
    book, tokens = load_strategy_book(config)

    if args.source == "binance":
        from ladder_engine.data.binance import BinanceKlineProvider
        provider = BinanceKlineProvider(config.binance_api_key, config.binance_api_secret, interval=args.interval,
                                        testnet=config.use_testnet)
    else:
        provider = FilePriceSeriesProvider(config.data_dir)
    samples = provider.fetch_year(args.token, args.year)

    engine = BacktestEngine(
        book,
        tokens,
        initial_capital=config.initial_capital,
        timeframe=config.timeframe,
        maker_fee=config.maker_fee,
        periods_per_year=config.periods_per_year,
        trend_lookback=config.trend_lookback,
    )
    result = engine.run(samples, args.token, args.strategy, year=args.year, initial_capital=args.capital)

    m = result.metrics
    if m:
        pnls = [t.pnl for t in result.closing_trades if t.pnl is not None]
        pf = f"{m.profit_factor:.2f}" if math.isfinite(m.profit_factor) else "inf (no losses)"
        print(f"\n--- Backtest Results: {result.token} {args.year} strategy {result.strategy_id} ---")
        print(f"Samples: {len(samples)} | skipped entries: {result.skipped}")
        print(f"Total trades: {m.total_trades} (wins: {m.winning_trades}, losses: {m.losing_trades})")
        print(f"Total return: {m.total_return:.2f} USDT ({m.total_return_pct:.2f}%)")
        print(f"Sharpe ratio: {m.sharpe_ratio:.2f}")
        print(f"Sortino ratio: {m.sortino_ratio:.2f}")
        print(f"Max drawdown: {m.max_drawdown:.2f} USDT ({m.max_drawdown_pct:.2f}%)")
        print(f"Win rate: {m.win_rate*100:.1f}%")
        print(f"Profit factor: {pf}")
        print(f"Avg / best / worst trade: {m.avg_trade:.2f} / {m.best_trade:.2f} / {m.worst_trade:.2f}")
        print(f"Expectancy: {expectancy(pnls):.2f} USD/trade")

    if args.json:
        with open(args.json, "w", encoding="utf-8") as f:
            json.dump(result.to_dict(), f, indent=2)
        logger.info("Wrote %s", args.json)
    return 0


def run_settle(args: argparse.Namespace) -> int:
    """Settle every closed order in a JSON dump and print the resulting bills and claims."""
    config = load_config(args.config, ROOT)
    setup_logging(config.log_level, config.log_dir, config.log_file)
    with open(args.orders, "r", encoding="utf-8") as f:
        repo = InMemorySettlementRepository.from_dump(json.load(f))

    def notify(chat_id: str, text: str) -> bool:
        return send_telegram(text, config.telegram_bot_token, chat_id)

    aggregator = SettlementAggregator(
        repo,
        window_before_days=config.window_before_days,
        window_after_days=config.window_after_days,
        payment_grace_days=config.payment_grace_days,
        notifier=notify,
    )
    closed = [
        o.order_id for o in sorted(repo.orders(), key=lambda o: (o.closed_at or 0, o.order_id))
        if not o.is_open and o.closed_at is not None and o.user_id is not None
    ]
    aggregator.settle_all(closed)

    out = {"bills": [], "claims": []}
    for user in repo.users():
        out["bills"].extend(b.to_dict() for b in repo.bills_for_user(user.id))
        out["claims"].extend(c.to_dict() for c in repo.claims_for_user(user.id))
    print(json.dumps(out, indent=2))
    overdue = aggregator.overdue_users()
    if overdue:
        logger.warning("Users with unpaid bills past %d days: %s", config.payment_grace_days, overdue)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Ladder Engine CLI")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    sub = parser.add_subparsers(dest="mode", required=True)

    bt = sub.add_parser("backtest", help="Replay a strategy over one year of prices")
    bt.add_argument("--token", required=True, help="Token name, e.g. BTC")
    bt.add_argument("--year", type=int, required=True)
    bt.add_argument("--strategy", type=int, required=True, help="Root strategy id")
    bt.add_argument("--capital", type=float, default=None, help="Initial capital (default from config)")
    bt.add_argument("--source", choices=["file", "binance"], default="file")
    bt.add_argument("--interval", default="1h", help="Kline interval for --source binance")
    bt.add_argument("--json", type=Path, default=None, help="Write the full result as JSON")

    st = sub.add_parser("settle", help="Aggregate closed orders into bills and claims")
    st.add_argument("--orders", type=Path, required=True, help="JSON dump with users and orders")

    args = parser.parse_args()
    try:
        if args.mode == "backtest":
            return run_backtest(args)
        return run_settle(args)
    except LadderEngineError as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    exit(main())
