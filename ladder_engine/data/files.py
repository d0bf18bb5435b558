"""
Historical price files: {data_dir}/{TOKEN}/{TOKEN}{year}.json or .csv.

JSON may be an array of candles or an object keyed by date. Column names are
matched case-insensitively: Date/timestamp/time, Open, High, Low, Close.
"""

from __future__ import annotations
import json
import logging
from pathlib import Path
from typing import List, Optional

import pandas as pd

from ladder_engine.core.errors import PriceSeriesError
from ladder_engine.core.types import PricePoint
from ladder_engine.data.provider import PriceSeriesProvider
from ladder_engine.utils.timeframes import from_ms

logger = logging.getLogger("ladder_engine.data.files")

_EPOCH = pd.Timestamp("1970-01-01", tz="UTC")


def normalize_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Lower-case columns, derive an int64 `timestamp` in epoch ms, sort oldest first."""
    df = df.rename(columns={c: str(c).strip().lower() for c in df.columns})
    ts_col = next((c for c in ("timestamp", "time", "date", "open_time") if c in df.columns), None)
    if ts_col is None or "close" not in df.columns:
        raise PriceSeriesError(f"price data needs a time column and close, got {list(df.columns)}")
    raw = df[ts_col]
    if pd.api.types.is_numeric_dtype(raw):
        ts = raw.astype("int64")
    else:
        ts = (pd.to_datetime(raw, utc=True) - _EPOCH) // pd.Timedelta(milliseconds=1)
    out = pd.DataFrame({"timestamp": ts.astype("int64"), "close": pd.to_numeric(df["close"], errors="coerce")})
    for col in ("open", "high", "low"):
        out[col] = pd.to_numeric(df[col], errors="coerce") if col in df.columns else float("nan")
    out = out.dropna(subset=["close"])
    return out.sort_values("timestamp", kind="mergesort").reset_index(drop=True)


def frame_to_points(df: pd.DataFrame) -> List[PricePoint]:
    def opt(v) -> Optional[float]:
        return None if pd.isna(v) else float(v)

    return [
        PricePoint(timestamp=int(r.timestamp), price=float(r.close), open=opt(r.open), high=opt(r.high), low=opt(r.low))
        for r in df.itertuples(index=False)
    ]


def read_price_file(path: Path) -> pd.DataFrame:
    if path.suffix.lower() == ".csv":
        return normalize_frame(pd.read_csv(path))
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = list(data.values())
    if not isinstance(data, list):
        raise PriceSeriesError(f"{path}: expected an array or object of candles")
    return normalize_frame(pd.DataFrame(data))


class FilePriceSeriesProvider(PriceSeriesProvider):
    """Loads yearly files from a local directory tree."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def path_for(self, token: str, year: int) -> Optional[Path]:
        token = token.upper()
        for suffix in (".json", ".csv"):
            for name in (f"{token}{year}{suffix}", f"{year}{suffix}"):
                path = self.data_dir / token / name
                if path.exists():
                    return path
        return None

    def fetch(self, token: str, start_ms: int, end_ms: int) -> List[PricePoint]:
        if end_ms <= start_ms:
            return []
        first_year = from_ms(start_ms).year
        last_year = from_ms(end_ms - 1).year
        frames = []
        for year in range(first_year, last_year + 1):
            path = self.path_for(token, year)
            if path is None:
                logger.warning("No local data for %s %d under %s", token, year, self.data_dir)
                continue
            frames.append(read_price_file(path))
        if not frames:
            return []
        df = pd.concat(frames, ignore_index=True).sort_values("timestamp", kind="mergesort")
        df = df[(df["timestamp"] >= start_ms) & (df["timestamp"] < end_ms)]
        logger.info("Loaded %d samples for %s", len(df), token)
        return frame_to_points(df)
