"""
Strategy definitions and ladder validation.

A ladder is the ordered list of Target legs for one strategy+token pair. Legs are
validated when the book is loaded, so a malformed strategy never reaches a
simulation:

  - at least two legs (entry-protection leg plus one target)
  - target percents strictly increasing
  - first leg stop below zero (an adverse move from entry)
  - each non-final leg's stop strictly below the next leg's target
  - final leg stop not above its own target

Child ("trigger") strategies reference their parent by id. Chains are one level
deep: a parent must itself be a root.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ladder_engine.core.errors import StrategyConfigError
from ladder_engine.core.types import Direction, Strategy, Target, Token, TriggerRule

logger = logging.getLogger("ladder_engine.strategies")


def validate_ladder(strategy_id: int, token: str, targets: Sequence[Target]) -> None:
    """Raise StrategyConfigError if the ladder breaks an ordering or sign rule."""
    where = f"strategy {strategy_id} / {token}"
    if len(targets) < 2:
        raise StrategyConfigError(f"{where}: ladder needs at least 2 legs, got {len(targets)}")
    for leg in targets:
        if leg.strategy_id != strategy_id or leg.token != token:
            raise StrategyConfigError(f"{where}: leg belongs to strategy {leg.strategy_id} / {leg.token}")
    for prev, nxt in zip(targets, targets[1:]):
        if nxt.target_percent <= prev.target_percent:
            raise StrategyConfigError(
                f"{where}: target percents must be strictly increasing "
                f"({prev.target_percent} then {nxt.target_percent})"
            )
        if prev.stoploss_percent >= nxt.target_percent:
            raise StrategyConfigError(
                f"{where}: stop {prev.stoploss_percent}% is not below next target {nxt.target_percent}%"
            )
    if targets[0].stoploss_percent >= 0:
        raise StrategyConfigError(f"{where}: first leg stop must be an adverse move (< 0), got {targets[0].stoploss_percent}")
    last = targets[-1]
    if last.stoploss_percent > last.target_percent:
        raise StrategyConfigError(f"{where}: last leg stop {last.stoploss_percent}% above its target {last.target_percent}%")


def validate_strategy(strategy: Strategy) -> None:
    if not 0 < strategy.contribution <= 100:
        raise StrategyConfigError(f"strategy {strategy.id}: contribution must be in (0, 100], got {strategy.contribution}")
    if strategy.parent_id == strategy.id:
        raise StrategyConfigError(f"strategy {strategy.id}: cannot be its own parent")
    for token, legs in strategy.ladders.items():
        validate_ladder(strategy.id, token, legs)


def _parse_leg(strategy_id: int, token: str, raw: Any, idx: int) -> Target:
    if isinstance(raw, Mapping):
        target = raw.get("target", raw.get("target_percent"))
        stop = raw.get("stoploss", raw.get("stoploss_percent"))
        leg_id = raw.get("id")
    elif isinstance(raw, (list, tuple)) and len(raw) == 2:
        target, stop = raw
        leg_id = None
    else:
        raise StrategyConfigError(f"strategy {strategy_id} / {token}: leg {idx} must be [target, stop] or a mapping")
    if target is None or stop is None:
        raise StrategyConfigError(f"strategy {strategy_id} / {token}: leg {idx} missing target or stoploss")
    try:
        return Target(strategy_id=strategy_id, token=token, target_percent=float(target),
                      stoploss_percent=float(stop), id=leg_id)
    except (TypeError, ValueError) as e:
        raise StrategyConfigError(f"strategy {strategy_id} / {token}: leg {idx} is not numeric") from e


def _enum(kind, value: Any, default, strategy_id: int):
    if value is None:
        return default
    try:
        return kind(str(value).upper())
    except ValueError as e:
        raise StrategyConfigError(f"strategy {strategy_id}: invalid {kind.__name__} {value!r}") from e


def strategy_from_dict(raw: Mapping[str, Any]) -> Strategy:
    """Build a Strategy from a config mapping. Legs keep their written order."""
    try:
        sid = int(raw["id"])
    except (KeyError, TypeError, ValueError) as e:
        raise StrategyConfigError(f"strategy without a valid id: {raw!r}") from e
    ladders: Dict[str, Tuple[Target, ...]] = {}
    for token, legs in (raw.get("targets") or {}).items():
        token = str(token).upper()
        ladders[token] = tuple(_parse_leg(sid, token, leg, i) for i, leg in enumerate(legs or []))
    parent = raw.get("parent", raw.get("parent_id"))
    return Strategy(
        id=sid,
        name=str(raw.get("name", f"strategy-{sid}")),
        contribution=float(raw.get("contribution", 0)),
        direction=_enum(Direction, raw.get("direction"), Direction.SAME, sid),
        close_before_boundary=bool(raw.get("close_before_boundary", False)),
        parent_id=int(parent) if parent is not None else None,
        trigger_rule=_enum(TriggerRule, raw.get("trigger_rule"), TriggerRule.DEFAULT, sid),
        active=bool(raw.get("active", True)),
        ladders=ladders,
    )


def token_from_dict(raw: Mapping[str, Any]) -> Token:
    try:
        return Token(
            name=str(raw["name"]).upper(),
            stable=str(raw.get("stable", "USDT")).upper(),
            min_qty=float(raw.get("min_qty", 0.001)),
            leverage=int(raw.get("leverage", 1)),
            active=bool(raw.get("active", True)),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise StrategyConfigError(f"invalid token definition: {raw!r}") from e


class StrategyBook:
    """Validated strategies indexed by id, with parent -> children lookup for trigger chaining."""

    def __init__(self, strategies: Iterable[Strategy]):
        self._by_id: Dict[int, Strategy] = {}
        for s in strategies:
            if s.id in self._by_id:
                raise StrategyConfigError(f"duplicate strategy id {s.id}")
            validate_strategy(s)
            self._by_id[s.id] = s
        self._children: Dict[int, List[Strategy]] = {}
        for s in self._by_id.values():
            if s.parent_id is None:
                continue
            parent = self._by_id.get(s.parent_id)
            if parent is None:
                raise StrategyConfigError(f"strategy {s.id}: unknown parent {s.parent_id}")
            if parent.parent_id is not None:
                raise StrategyConfigError(f"strategy {s.id}: parent {parent.id} is itself a trigger strategy")
            self._children.setdefault(parent.id, []).append(s)
        for kids in self._children.values():
            kids.sort(key=lambda k: k.id)

    @classmethod
    def from_config(cls, raw_strategies: Iterable[Mapping[str, Any]]) -> "StrategyBook":
        return cls(strategy_from_dict(r) for r in raw_strategies)

    def __contains__(self, strategy_id: int) -> bool:
        return strategy_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, strategy_id: int) -> Strategy:
        try:
            return self._by_id[strategy_id]
        except KeyError:
            raise StrategyConfigError(f"unknown strategy {strategy_id}") from None

    def roots(self) -> List[Strategy]:
        return [s for s in self._by_id.values() if s.parent_id is None]

    def children(self, parent_id: int, active_only: bool = True) -> List[Strategy]:
        kids = self._children.get(parent_id, [])
        return [k for k in kids if k.active] if active_only else list(kids)

    def select_trigger(self, parent_id: int, trend: str) -> Optional[Strategy]:
        """
        Pick the child to open after the parent completes its ladder.
        A GREEN/RED trend prefers a FIVE_SAME_COLOR child; otherwise the DEFAULT child.
        """
        kids = self.children(parent_id)
        if not kids:
            return None
        by_rule = {k.trigger_rule: k for k in reversed(kids)}
        if trend in ("GREEN", "RED") and TriggerRule.FIVE_SAME_COLOR in by_rule:
            return by_rule[TriggerRule.FIVE_SAME_COLOR]
        return by_rule.get(TriggerRule.DEFAULT)

    def require_ladders(self, strategy_id: int, token: str) -> None:
        """The strategy and every active child must carry a ladder for token."""
        for s in [self.get(strategy_id)] + self.children(strategy_id):
            if not s.ladder(token):
                raise StrategyConfigError(f"strategy {s.id} has no ladder for token {token}")


def load_strategy_book(config) -> Tuple[StrategyBook, Dict[str, Token]]:
    """Build and validate strategies and tokens from a loaded Config."""
    tokens = {t.name: t for t in (token_from_dict(r) for r in config.tokens)}
    book = StrategyBook.from_config(config.strategies)
    for s in book.roots():
        for token in s.ladders:
            if tokens and token not in tokens:
                raise StrategyConfigError(f"strategy {s.id}: ladder for unknown token {token}")
    logger.info("Loaded %d strategies, %d tokens", len(book), len(tokens))
    return book, tokens
