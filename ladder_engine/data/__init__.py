"""Data: price series contract and provider adapters (local files, Binance klines)."""

from ladder_engine.data.provider import PriceSeriesProvider, validate_series
from ladder_engine.data.files import FilePriceSeriesProvider

__all__ = ["PriceSeriesProvider", "validate_series", "FilePriceSeriesProvider"]
