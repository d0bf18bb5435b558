"""
Settlement records: user accounts, vouchers, bills and claims.
Timestamps are epoch ms. Status helpers raise StatusTransitionError on illegal moves.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import List, Optional

from ladder_engine.core.errors import StatusTransitionError
from ladder_engine.settlement.commission import commission_for
from ladder_engine.utils.timeframes import from_ms


class VoucherType(str, Enum):
    DC = "DC"    # fixed percentage points off
    DCP = "DCP"  # percent of the current rate off


class BillStatus(str, Enum):
    NEW = "NEW"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"


class ClaimStatus(str, Enum):
    NEW = "NEW"
    PROCESSING = "PROCESSING"
    FINISHED = "FINISHED"
    REJECTED = "REJECTED"


_BILL_MOVES = {
    BillStatus.NEW: {BillStatus.PROCESSING},
    BillStatus.PROCESSING: {BillStatus.COMPLETED},
    BillStatus.COMPLETED: set(),
}

_CLAIM_MOVES = {
    ClaimStatus.NEW: {ClaimStatus.PROCESSING},
    ClaimStatus.PROCESSING: {ClaimStatus.FINISHED, ClaimStatus.REJECTED},
    ClaimStatus.FINISHED: set(),
    ClaimStatus.REJECTED: set(),
}


@dataclass(frozen=True)
class Voucher:
    type: VoucherType
    value: float
    status: str = "inuse"
    expire_at: Optional[int] = None

    def is_usable(self, now_ms: int) -> bool:
        if self.status != "inuse":
            return False
        return self.expire_at is None or self.expire_at > now_ms


@dataclass
class UserAccount:
    id: int
    admin_commission_percent: float = 0.0
    referral_commission_percent: float = 0.0
    referral_user_id: Optional[int] = None
    telegram_chat_id: str = ""
    voucher: Optional[Voucher] = None
    active: bool = True


@dataclass
class Bill:
    """Closed orders of one user inside [window_start, window_end]. net_profit is gross, pre-commission."""
    id: int
    user_id: int
    window_start: int
    window_end: int
    admin_commission_percent: float
    referral_commission_percent: float
    order_ids: List[int] = field(default_factory=list)
    net_profit: float = 0.0
    status: BillStatus = BillStatus.NEW
    created_at: int = 0
    claim_id: Optional[int] = None

    def covers(self, ts: int) -> bool:
        return self.window_start <= ts <= self.window_end

    @property
    def commission(self) -> float:
        return commission_for(self.net_profit, self.admin_commission_percent, self.referral_commission_percent)

    def due_date(self, grace_days: int = 7) -> date:
        return (from_ms(self.window_end) + timedelta(days=grace_days)).date()

    def transition(self, status: BillStatus) -> None:
        if status not in _BILL_MOVES[self.status]:
            raise StatusTransitionError(f"bill {self.id}: {self.status.value} -> {status.value} not allowed")
        self.status = status

    def to_dict(self) -> dict:
        # no profit, no commission: report zero rates
        profitable = self.net_profit > 0
        return {
            "id": self.id,
            "userId": self.user_id,
            "from": self.window_start,
            "to": self.window_end,
            "orderIds": list(self.order_ids),
            "netProfit": self.net_profit,
            "adminCommissionPercent": self.admin_commission_percent if profitable else 0.0,
            "referralCommissionPercent": self.referral_commission_percent if profitable else 0.0,
            "commission": self.commission,
            "status": self.status.value,
            "createdAt": self.created_at,
            "claimId": self.claim_id,
        }


@dataclass
class Claim:
    """Payable aggregate of bills. amount is derived from the bills, never set directly."""
    id: int
    user_id: int
    bill_ids: List[int] = field(default_factory=list)
    amount: float = 0.0
    status: ClaimStatus = ClaimStatus.NEW

    def transition(self, status: ClaimStatus) -> None:
        if status not in _CLAIM_MOVES[self.status]:
            raise StatusTransitionError(f"claim {self.id}: {self.status.value} -> {status.value} not allowed")
        self.status = status

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "billIds": list(self.bill_ids),
            "amount": self.amount,
            "status": self.status.value,
        }
