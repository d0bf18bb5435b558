"""
Aggregate price samples into UTC period candles (1h / 4h / 1d) and classify trend.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Sequence

import pandas as pd

from ladder_engine.core.types import PricePoint
from ladder_engine.utils.timeframes import bucket_start


@dataclass(frozen=True)
class PeriodCandle:
    start: int  # bucket start, epoch ms
    open: float
    high: float
    low: float
    close: float

    @property
    def is_green(self) -> bool:
        return self.close > self.open

    @property
    def is_red(self) -> bool:
        return self.close < self.open


def samples_frame(samples: Sequence[PricePoint]) -> pd.DataFrame:
    """OHLC frame from samples. Missing open/high/low fall back to the sample price."""
    rows = [
        (
            s.timestamp,
            s.open if s.open is not None else s.price,
            s.high if s.high is not None else s.price,
            s.low if s.low is not None else s.price,
            s.price,
        )
        for s in samples
    ]
    return pd.DataFrame(rows, columns=["timestamp", "open", "high", "low", "close"])


def aggregate_periods(samples: Sequence[PricePoint], timeframe: str) -> List[PeriodCandle]:
    """One candle per period that has at least one sample, in chronological order."""
    if not samples:
        return []
    df = samples_frame(samples)
    df["bucket"] = [bucket_start(int(ts), timeframe) for ts in df["timestamp"]]
    agg = df.groupby("bucket", sort=True).agg(
        open=("open", "first"), high=("high", "max"), low=("low", "min"), close=("close", "last")
    )
    return [
        PeriodCandle(start=int(b), open=float(r["open"]), high=float(r["high"]), low=float(r["low"]),
                     close=float(r["close"]))
        for b, r in agg.iterrows()
    ]


class PeriodIndex:
    """Lookup of completed periods preceding a given bucket."""

    def __init__(self, candles: Sequence[PeriodCandle]):
        self.candles = list(candles)
        self._pos: Dict[int, int] = {c.start: i for i, c in enumerate(self.candles)}

    def previous(self, bucket: int):
        """Candle of the period before bucket, or None for the first period."""
        idx = self._pos.get(bucket)
        if idx is None or idx == 0:
            return None
        return self.candles[idx - 1]

    def trend(self, bucket: int, lookback: int = 5) -> str:
        """GREEN / RED when the last `lookback` completed periods share a color, else MIXED."""
        idx = self._pos.get(bucket)
        if idx is None or idx < lookback or lookback <= 0:
            return "MIXED"
        window = self.candles[idx - lookback: idx]
        if all(c.is_green for c in window):
            return "GREEN"
        if all(c.is_red for c in window):
            return "RED"
        return "MIXED"
