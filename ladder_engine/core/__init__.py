"""Core: config, types, errors, logging."""

from ladder_engine.core.config import load_config, Config
from ladder_engine.core.errors import (
    LadderEngineError,
    StrategyConfigError,
    PriceSeriesError,
    StatusTransitionError,
    SettlementError,
)
from ladder_engine.core.types import (
    Side,
    Direction,
    TriggerRule,
    OrderStatus,
    LedgerEvent,
    Token,
    Target,
    Strategy,
    PricePoint,
    Order,
    LedgerEntry,
    EquityPoint,
)
from ladder_engine.core.logger import setup_logging

__all__ = [
    "load_config",
    "Config",
    "LadderEngineError",
    "StrategyConfigError",
    "PriceSeriesError",
    "StatusTransitionError",
    "SettlementError",
    "Side",
    "Direction",
    "TriggerRule",
    "OrderStatus",
    "LedgerEvent",
    "Token",
    "Target",
    "Strategy",
    "PricePoint",
    "Order",
    "LedgerEntry",
    "EquityPoint",
    "setup_logging",
]
