"""Settlement: bills, claims and commission splits for closed live orders."""

from ladder_engine.settlement.commission import normalize_percent, commission_for, apply_voucher
from ladder_engine.settlement.models import (
    Voucher,
    VoucherType,
    UserAccount,
    Bill,
    BillStatus,
    Claim,
    ClaimStatus,
)
from ladder_engine.settlement.repository import SettlementRepository, InMemorySettlementRepository
from ladder_engine.settlement.aggregator import SettlementAggregator, SettlementResult, Drift, reconcile

__all__ = [
    "normalize_percent",
    "commission_for",
    "apply_voucher",
    "Voucher",
    "VoucherType",
    "UserAccount",
    "Bill",
    "BillStatus",
    "Claim",
    "ClaimStatus",
    "SettlementRepository",
    "InMemorySettlementRepository",
    "SettlementAggregator",
    "SettlementResult",
    "Drift",
    "reconcile",
]
