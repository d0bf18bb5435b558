"""
Capital manager: per-run capital ledger for the simulation driver.
Budget = contribution% x available capital; qty = budget / price x leverage,
truncated to the token's min_qty precision. The committed budget is the margin
actually used (qty x price / leverage).
"""

from __future__ import annotations
import logging
from dataclasses import dataclass

from ladder_engine.core.types import Token
from ladder_engine.utils.exchange_filters import round_quantity

logger = logging.getLogger("ladder_engine.risk")


@dataclass
class AllocationResult:
    """Result of a capital check: allowed or rejected + reason."""
    allowed: bool
    budget: float = 0.0
    qty: float = 0.0
    reason: str = ""


class CapitalManager:
    """
    Single owner of one run's capital. Never shared between runs.
    Invariant: available + committed == initial + realized.
    """

    def __init__(self, initial_capital: float):
        self.initial_capital = initial_capital
        self.available = initial_capital
        self.committed = 0.0
        self.realized = 0.0

    @property
    def equity(self) -> float:
        """Capital excluding unrealized P&L of open positions."""
        return self.available + self.committed

    def allocate(self, contribution_pct: float, price: float, token: Token) -> AllocationResult:
        """Reserve capital for a new position. Rejections are recoverable skips."""
        if self.available <= 0:
            return AllocationResult(allowed=False, reason="no available capital")
        if price <= 0:
            return AllocationResult(allowed=False, reason="non-positive price")
        budget = self.available * (contribution_pct / 100.0)
        if budget > self.available:
            return AllocationResult(allowed=False, reason=f"budget {budget:.2f} exceeds available {self.available:.2f}")
        leverage = max(token.leverage, 1)
        qty = round_quantity(budget / price * leverage, token.min_qty)
        if qty <= 0:
            return AllocationResult(allowed=False, reason=f"qty below min_qty {token.min_qty}")
        used = qty * price / leverage
        self.available -= used
        self.committed += used
        return AllocationResult(allowed=True, budget=used, qty=qty)

    def release(self, budget: float, net_profit: float) -> None:
        """Return a closed position's budget plus its realized P&L."""
        self.committed -= budget
        self.available += budget + net_profit
        self.realized += net_profit

    def check_conservation(self, tolerance: float = 1e-6) -> bool:
        lhs = self.available + self.committed
        rhs = self.initial_capital + self.realized
        return abs(lhs - rhs) <= tolerance * max(1.0, abs(rhs))
