"""Timeframe conversion and UTC period bucketing on epoch milliseconds."""

from datetime import datetime, timezone

MS_PER_MINUTE = 60_000
MS_PER_DAY = 24 * 60 * MS_PER_MINUTE


def timeframe_minutes(tf: str) -> int:
    """Convert Binance-style timeframe (e.g. '5m', '1h', '1d') to minutes."""
    tf = tf.strip().lower()
    if tf.endswith("m"):
        return int(tf[:-1])
    if tf.endswith("h"):
        return int(tf[:-1]) * 60
    if tf.endswith("d"):
        return int(tf[:-1]) * 60 * 24
    raise ValueError(f"Unsupported timeframe: {tf}")


def bucket_start(timestamp_ms: int, tf: str) -> int:
    """Start of the UTC period containing timestamp_ms. 4h buckets start at 00, 04, 08, ..."""
    width = timeframe_minutes(tf) * MS_PER_MINUTE
    return timestamp_ms - (timestamp_ms % width)


def year_bounds(year: int) -> tuple[int, int]:
    """[start, end) of a calendar year in UTC epoch ms."""
    start = datetime(year, 1, 1, tzinfo=timezone.utc)
    end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    return int(start.timestamp() * 1000), int(end.timestamp() * 1000)


def to_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def from_ms(timestamp_ms: int) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
