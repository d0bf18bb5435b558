"""
Read-only replay of a trade ledger at a speed multiplier.

The cursor is virtual time: first ledger timestamp + real elapsed seconds x
speed x 1000. The ledger is an immutable tuple, so a replay never locks or
copies it; cancel() freezes the cursor and keeps the prefix already shown.
"""

from __future__ import annotations
import bisect
import time
from typing import Callable, Optional, Sequence, Tuple

from ladder_engine.core.types import LedgerEntry


class LedgerReplay:
    def __init__(
        self,
        trades: Sequence[LedgerEntry],
        speed: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if speed <= 0:
            raise ValueError(f"speed must be positive, got {speed}")
        self._trades: Tuple[LedgerEntry, ...] = tuple(trades)
        self._stamps = [t.timestamp for t in self._trades]
        self._speed = speed
        self._clock = clock
        self._started_at = clock()
        self._origin = self._stamps[0] if self._stamps else 0
        self._frozen_cursor: Optional[float] = None

    @property
    def cancelled(self) -> bool:
        return self._frozen_cursor is not None

    def cursor(self) -> float:
        """Current virtual timestamp (epoch ms). Monotonic; stops moving once cancelled."""
        if self._frozen_cursor is not None:
            return self._frozen_cursor
        elapsed = max(0.0, self._clock() - self._started_at)
        return self._origin + elapsed * self._speed * 1000.0

    def visible(self) -> Tuple[LedgerEntry, ...]:
        """Ledger prefix with timestamp <= cursor."""
        idx = bisect.bisect_right(self._stamps, self.cursor())
        return self._trades[:idx]

    def cancel(self) -> None:
        if self._frozen_cursor is None:
            self._frozen_cursor = self.cursor()

    @property
    def done(self) -> bool:
        return len(self.visible()) == len(self._trades)
