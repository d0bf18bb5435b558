"""Abstract price series provider and the input contract every series must meet."""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import List, Sequence

from ladder_engine.core.errors import PriceSeriesError
from ladder_engine.core.types import PricePoint
from ladder_engine.utils.timeframes import year_bounds


def validate_series(points: Sequence[PricePoint]) -> None:
    """Timestamps non-decreasing, prices positive. Gaps are allowed."""
    prev_ts = None
    for i, p in enumerate(points):
        if p.price <= 0:
            raise PriceSeriesError(f"sample {i} at {p.timestamp}: non-positive price {p.price}")
        if prev_ts is not None and p.timestamp < prev_ts:
            raise PriceSeriesError(f"sample {i}: timestamp {p.timestamp} before previous {prev_ts}")
        prev_ts = p.timestamp


class PriceSeriesProvider(ABC):
    """Supplies ordered samples for a token over [start_ms, end_ms)."""

    @abstractmethod
    def fetch(self, token: str, start_ms: int, end_ms: int) -> List[PricePoint]:
        """Return samples with start_ms <= timestamp < end_ms, oldest first."""
        pass

    def fetch_year(self, token: str, year: int) -> List[PricePoint]:
        start, end = year_bounds(year)
        return self.fetch(token, start, end)
