"""Utils: Telegram, timeframes, exchange filters."""

from ladder_engine.utils.telegram import send_telegram
from ladder_engine.utils.timeframes import timeframe_minutes, bucket_start, year_bounds
from ladder_engine.utils.exchange_filters import round_quantity

__all__ = ["send_telegram", "timeframe_minutes", "bucket_start", "year_bounds", "round_quantity"]
