"""
Historical futures klines from Binance with retry and rate-limit handling.
Read-only market data: this module never places or cancels orders.
"""

from __future__ import annotations
import logging
import time
from typing import List, Optional

import pandas as pd

from binance.client import Client
from binance.exceptions import BinanceAPIException

from ladder_engine.core.types import PricePoint, Token
from ladder_engine.data.files import frame_to_points, normalize_frame
from ladder_engine.data.provider import PriceSeriesProvider
from ladder_engine.utils.exchange_filters import parse_symbol_filters

logger = logging.getLogger("ladder_engine.data.binance")

KLINE_LIMIT = 1500


def retry_on_rate_limit(max_retries: int = 3, base_delay: float = 1.0):
    """Decorator: retry on 429 or 418 (rate limit)."""
    def decorator(f):
        def wrapped(*args, **kwargs):
            last_exc = None
            for attempt in range(max_retries):
                try:
                    return f(*args, **kwargs)
                except BinanceAPIException as e:
                    last_exc = e
                    if e.status_code in (429, 418) and attempt < max_retries - 1:
                        delay = base_delay * (2 ** attempt)
                        logger.warning("Rate limited, retry in %.1fs (attempt %d)", delay, attempt + 1)
                        time.sleep(delay)
                    else:
                        raise
            raise last_exc
        return wrapped
    return decorator


class BinanceKlineProvider(PriceSeriesProvider):
    """USDT-M futures klines, paginated by KLINE_LIMIT."""

    def __init__(self, api_key: str = "", api_secret: str = "", interval: str = "5m",
                 stable: str = "USDT", testnet: bool = False, client: Optional[Client] = None):
        self._client = client or Client(api_key or None, api_secret or None, testnet=testnet)
        self.interval = interval
        self.stable = stable

    @retry_on_rate_limit(max_retries=3, base_delay=1.0)
    def _page(self, symbol: str, start_ms: int, end_ms: int) -> list:
        return self._client.futures_klines(
            symbol=symbol, interval=self.interval, startTime=start_ms, endTime=end_ms - 1, limit=KLINE_LIMIT
        )

    def fetch(self, token: str, start_ms: int, end_ms: int) -> List[PricePoint]:
        symbol = token.upper() + self.stable
        rows: list = []
        cursor = start_ms
        while cursor < end_ms:
            page = self._page(symbol, cursor, end_ms)
            if not page:
                break
            rows.extend(page)
            if len(page) < KLINE_LIMIT:
                break
            cursor = int(page[-1][0]) + 1
        if not rows:
            return []
        df = pd.DataFrame([r[:6] for r in rows], columns=["open_time", "open", "high", "low", "close", "volume"])
        df = normalize_frame(df)
        df = df[(df["timestamp"] >= start_ms) & (df["timestamp"] < end_ms)].drop_duplicates("timestamp")
        logger.info("Fetched %d klines for %s (%s)", len(df), symbol, self.interval)
        return frame_to_points(df)

    @retry_on_rate_limit(max_retries=2)
    def token_info(self, token: str, leverage: int = 1) -> Optional[Token]:
        """Token definition with min_qty taken from the LOT_SIZE filter."""
        symbol = token.upper() + self.stable
        info = self._client.futures_exchange_info()
        for s in info.get("symbols", []):
            if s.get("symbol") == symbol:
                min_qty, _, _ = parse_symbol_filters(s)
                return Token(name=token.upper(), stable=self.stable, min_qty=min_qty, leverage=leverage)
        return None
