"""Strategies: ladder definitions, validation and the target ladder evaluator."""

from ladder_engine.strategies.ladder import StrategyBook, validate_ladder, load_strategy_book
from ladder_engine.strategies.evaluator import (
    evaluate,
    Hold,
    AdvanceLeg,
    Close,
    HOLD,
    resolve_side,
    trigger_side,
)

__all__ = [
    "StrategyBook",
    "validate_ladder",
    "load_strategy_book",
    "evaluate",
    "Hold",
    "AdvanceLeg",
    "Close",
    "HOLD",
    "resolve_side",
    "trigger_side",
]
