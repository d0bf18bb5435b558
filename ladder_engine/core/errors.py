"""Exception hierarchy. Every error raised by the engine derives from LadderEngineError."""

from __future__ import annotations


class LadderEngineError(Exception):
    """Base class for engine errors."""


class StrategyConfigError(LadderEngineError):
    """Malformed strategy or ladder. Raised at load time, before any simulation."""


class PriceSeriesError(LadderEngineError):
    """Price series violates the input contract (ordering, positive prices)."""


class StatusTransitionError(LadderEngineError):
    """Illegal status change on an Order, Bill or Claim."""


class SettlementError(LadderEngineError):
    """Order cannot be settled (not closed, unknown, missing close time)."""
