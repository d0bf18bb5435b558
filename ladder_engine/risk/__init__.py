"""Risk: per-run capital allocation."""

from ladder_engine.risk.manager import CapitalManager, AllocationResult

__all__ = ["CapitalManager", "AllocationResult"]
