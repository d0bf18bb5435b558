"""
Settlement aggregator: groups a user's closed orders into windowed Bills and
rolls Bills into a payable Claim.

Writes for one user are serialized by a per-user lock; different users settle
in parallel. An order already attached to a Bill is never attached again, so
settling the same orders twice leaves every total unchanged.
"""

from __future__ import annotations
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from ladder_engine.core.errors import SettlementError, StatusTransitionError
from ladder_engine.settlement.commission import apply_voucher
from ladder_engine.settlement.models import Bill, BillStatus, Claim, ClaimStatus
from ladder_engine.settlement.repository import SettlementRepository
from ladder_engine.utils.telegram import bill_due_message
from ladder_engine.utils.timeframes import MS_PER_DAY

logger = logging.getLogger("ladder_engine.settlement")

# (chat_id, text) -> delivered
Notifier = Callable[[str, str], bool]


@dataclass
class SettlementResult:
    bill: Bill
    claim: Optional[Claim]
    created: bool


@dataclass(frozen=True)
class Drift:
    kind: str
    record_id: int
    stored: float
    expected: float


def _now_ms() -> int:
    return int(time.time() * 1000)


class SettlementAggregator:
    def __init__(
        self,
        repo: SettlementRepository,
        window_before_days: float = 2,
        window_after_days: float = 1,
        payment_grace_days: int = 7,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], int] = _now_ms,
    ):
        self.repo = repo
        self.window_before_ms = int(window_before_days * MS_PER_DAY)
        self.window_after_ms = int(window_after_days * MS_PER_DAY)
        self.payment_grace_days = payment_grace_days
        self._notifier = notifier
        self._clock = clock
        self._locks: Dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _user_lock(self, user_id: int) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(user_id, threading.Lock())

    def settle(self, order_id: int) -> SettlementResult:
        order = self.repo.get_order(order_id)
        if order is None:
            raise SettlementError(f"unknown order {order_id}")
        if order.is_open or order.closed_at is None:
            raise SettlementError(f"order {order_id} is not closed")
        if order.user_id is None:
            raise SettlementError(f"order {order_id} has no user")

        with self._user_lock(order.user_id):
            # re-read under the lock; another settle may have attached it
            order = self.repo.get_order(order_id)
            if order.bill_id is not None:
                bill = self.repo.get_bill(order.bill_id)
                claim = self.repo.get_claim(bill.claim_id) if bill.claim_id is not None else None
                logger.debug("Order %d already on bill %d", order_id, bill.id)
                return SettlementResult(bill=bill, claim=claim, created=False)

            bill = self.repo.open_bill_for(order.user_id, order.closed_at)
            created = bill is None
            if created:
                bill = self._new_bill(order.user_id, order.closed_at)

            for o in self.repo.closed_orders(order.user_id, bill.window_start, bill.window_end):
                if o.bill_id is None:
                    o.bill_id = bill.id
                    self.repo.upsert_order(o)
            self._recompute_bill(bill)

            claim = self._attach_to_claim(bill)
            logger.info(
                "Settled order %d -> bill %d (net %.4f, %d orders), claim %d (amount %.4f)",
                order_id, bill.id, bill.net_profit, len(bill.order_ids), claim.id, claim.amount,
            )

        if created:
            self._notify(bill)
        return SettlementResult(bill=bill, claim=claim, created=created)

    def settle_all(self, order_ids: Sequence[int], max_workers: int = 1) -> List[SettlementResult]:
        """Settle many orders. Results keep the input order."""
        if max_workers <= 1:
            return [self.settle(oid) for oid in order_ids]
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(self.settle, order_ids))

    def detach_bill(self, bill_id: int) -> Optional[Claim]:
        """Remove a bill from its claim and recompute the claim amount."""
        bill = self.repo.get_bill(bill_id)
        if bill is None:
            raise SettlementError(f"unknown bill {bill_id}")
        with self._user_lock(bill.user_id):
            bill = self.repo.get_bill(bill_id)
            if bill.claim_id is None:
                return None
            claim = self.repo.get_claim(bill.claim_id)
            if claim.status is not ClaimStatus.NEW:
                raise StatusTransitionError(f"claim {claim.id} is {claim.status.value}, bills are frozen")
            claim.bill_ids = [b for b in claim.bill_ids if b != bill_id]
            bill.claim_id = None
            self.repo.upsert_bill(bill)
            self._recompute_claim(claim)
            logger.info("Detached bill %d from claim %d (amount %.4f)", bill_id, claim.id, claim.amount)
            return claim

    def overdue_users(self, now_ms: Optional[int] = None) -> List[int]:
        """Users holding a NEW bill created more than payment_grace_days ago."""
        now_ms = self._clock() if now_ms is None else now_ms
        cutoff = now_ms - self.payment_grace_days * MS_PER_DAY
        return sorted({b.user_id for b in self.repo.new_bills() if b.created_at <= cutoff})

    def suspend_overdue_users(self, now_ms: Optional[int] = None) -> List[int]:
        """Deactivate every overdue user. Returns the ids that changed."""
        suspended = []
        for user_id in self.overdue_users(now_ms):
            user = self.repo.get_user(user_id)
            if user is not None and user.active:
                user.active = False
                self.repo.upsert_user(user)
                suspended.append(user_id)
        if suspended:
            logger.warning("Suspended %d users with unpaid bills: %s", len(suspended), suspended)
        return suspended

    def _new_bill(self, user_id: int, closed_at: int) -> Bill:
        user = self.repo.get_user(user_id)
        if user is None:
            raise SettlementError(f"unknown user {user_id}")
        now = self._clock()
        admin, referral = apply_voucher(
            user.admin_commission_percent, user.referral_commission_percent, user.voucher, now
        )
        bill = Bill(
            id=self.repo.next_bill_id(),
            user_id=user_id,
            window_start=closed_at - self.window_before_ms,
            window_end=closed_at + self.window_after_ms,
            admin_commission_percent=admin,
            referral_commission_percent=referral,
            created_at=now,
        )
        self.repo.upsert_bill(bill)
        return bill

    def _recompute_bill(self, bill: Bill) -> None:
        orders = self.repo.orders_for_bill(bill.id)
        bill.order_ids = [o.order_id for o in orders]
        bill.net_profit = sum(o.net_profit for o in orders)
        self.repo.upsert_bill(bill)
        if bill.claim_id is not None:
            claim = self.repo.get_claim(bill.claim_id)
            if claim is not None:
                self._recompute_claim(claim)

    def _attach_to_claim(self, bill: Bill) -> Claim:
        if bill.claim_id is not None:
            return self.repo.get_claim(bill.claim_id)
        claim = self.repo.open_claim_for(bill.user_id)
        if claim is None:
            claim = Claim(id=self.repo.next_claim_id(), user_id=bill.user_id)
        claim.bill_ids.append(bill.id)
        bill.claim_id = claim.id
        self.repo.upsert_bill(bill)
        self._recompute_claim(claim)
        return claim

    def _recompute_claim(self, claim: Claim) -> None:
        bills = [self.repo.get_bill(bid) for bid in claim.bill_ids]
        claim.amount = sum(b.net_profit for b in bills if b is not None)
        self.repo.upsert_claim(claim)

    def _notify(self, bill: Bill) -> None:
        if self._notifier is None or bill.status is not BillStatus.NEW:
            return
        user = self.repo.get_user(bill.user_id)
        if user is None or not user.telegram_chat_id:
            return
        due = bill.due_date(self.payment_grace_days).isoformat()
        self._notifier(user.telegram_chat_id, bill_due_message(bill.commission, due))


def reconcile(repo: SettlementRepository, user_id: int, tolerance: float = 1e-9) -> List[Drift]:
    """Recompute every bill and claim total of a user from its parts. Empty list means consistent."""
    drifts: List[Drift] = []
    for bill in repo.bills_for_user(user_id):
        expected = sum(o.net_profit for o in repo.orders_for_bill(bill.id))
        if abs(expected - bill.net_profit) > tolerance:
            drifts.append(Drift("bill", bill.id, bill.net_profit, expected))
    for claim in repo.claims_for_user(user_id):
        expected = 0.0
        for bid in claim.bill_ids:
            bill = repo.get_bill(bid)
            if bill is not None:
                expected += bill.net_profit
        if abs(expected - claim.amount) > tolerance:
            drifts.append(Drift("claim", claim.id, claim.amount, expected))
    return drifts
