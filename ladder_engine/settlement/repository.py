"""
Persistence boundary for settlement. The aggregator only talks to this
interface; storage (database, API) lives behind an implementation.
"""

from __future__ import annotations
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

from ladder_engine.core.errors import SettlementError
from ladder_engine.core.types import Order, OrderStatus, Side
from ladder_engine.settlement.models import Bill, BillStatus, Claim, ClaimStatus, UserAccount, Voucher, VoucherType


class SettlementRepository(ABC):
    """Narrow read/write interface over users, orders, bills and claims."""

    @abstractmethod
    def get_user(self, user_id: int) -> Optional[UserAccount]:
        pass

    @abstractmethod
    def upsert_user(self, user: UserAccount) -> None:
        pass

    @abstractmethod
    def get_order(self, order_id: int) -> Optional[Order]:
        pass

    @abstractmethod
    def upsert_order(self, order: Order) -> None:
        pass

    @abstractmethod
    def closed_orders(self, user_id: int, start_ms: int, end_ms: int) -> List[Order]:
        """User's closed orders with closed_at in [start_ms, end_ms], oldest first."""
        pass

    @abstractmethod
    def orders_for_bill(self, bill_id: int) -> List[Order]:
        pass

    @abstractmethod
    def get_bill(self, bill_id: int) -> Optional[Bill]:
        pass

    @abstractmethod
    def upsert_bill(self, bill: Bill) -> None:
        pass

    @abstractmethod
    def bills_for_user(self, user_id: int) -> List[Bill]:
        pass

    @abstractmethod
    def new_bills(self) -> List[Bill]:
        """All bills still in NEW status."""
        pass

    @abstractmethod
    def get_claim(self, claim_id: int) -> Optional[Claim]:
        pass

    @abstractmethod
    def upsert_claim(self, claim: Claim) -> None:
        pass

    @abstractmethod
    def claims_for_user(self, user_id: int) -> List[Claim]:
        pass

    @abstractmethod
    def next_bill_id(self) -> int:
        pass

    @abstractmethod
    def next_claim_id(self) -> int:
        pass

    def open_bill_for(self, user_id: int, ts: int) -> Optional[Bill]:
        """NEW bill of the user whose window contains ts."""
        for bill in self.bills_for_user(user_id):
            if bill.status is BillStatus.NEW and bill.covers(ts):
                return bill
        return None

    def open_claim_for(self, user_id: int) -> Optional[Claim]:
        for claim in self.claims_for_user(user_id):
            if claim.status is ClaimStatus.NEW:
                return claim
        return None


class InMemorySettlementRepository(SettlementRepository):
    """Dict-backed repository for tests and the CLI."""

    def __init__(self):
        self._lock = threading.Lock()
        self._users: Dict[int, UserAccount] = {}
        self._orders: Dict[int, Order] = {}
        self._bills: Dict[int, Bill] = {}
        self._claims: Dict[int, Claim] = {}
        self._bill_seq = 0
        self._claim_seq = 0

    def get_user(self, user_id: int) -> Optional[UserAccount]:
        return self._users.get(user_id)

    def upsert_user(self, user: UserAccount) -> None:
        with self._lock:
            self._users[user.id] = user

    def users(self) -> List[UserAccount]:
        return list(self._users.values())

    def orders(self) -> List[Order]:
        return list(self._orders.values())

    def get_order(self, order_id: int) -> Optional[Order]:
        return self._orders.get(order_id)

    def upsert_order(self, order: Order) -> None:
        with self._lock:
            self._orders[order.order_id] = order

    def closed_orders(self, user_id: int, start_ms: int, end_ms: int) -> List[Order]:
        with self._lock:
            found = [
                o for o in self._orders.values()
                if o.user_id == user_id and not o.is_open and o.closed_at is not None
                and start_ms <= o.closed_at <= end_ms
            ]
        return sorted(found, key=lambda o: (o.closed_at, o.order_id))

    def orders_for_bill(self, bill_id: int) -> List[Order]:
        with self._lock:
            found = [o for o in self._orders.values() if o.bill_id == bill_id]
        return sorted(found, key=lambda o: o.order_id)

    def get_bill(self, bill_id: int) -> Optional[Bill]:
        return self._bills.get(bill_id)

    def upsert_bill(self, bill: Bill) -> None:
        with self._lock:
            self._bills[bill.id] = bill

    def bills_for_user(self, user_id: int) -> List[Bill]:
        with self._lock:
            return sorted((b for b in self._bills.values() if b.user_id == user_id), key=lambda b: b.id)

    def new_bills(self) -> List[Bill]:
        with self._lock:
            return sorted((b for b in self._bills.values() if b.status is BillStatus.NEW), key=lambda b: b.id)

    def get_claim(self, claim_id: int) -> Optional[Claim]:
        return self._claims.get(claim_id)

    def upsert_claim(self, claim: Claim) -> None:
        with self._lock:
            self._claims[claim.id] = claim

    def claims_for_user(self, user_id: int) -> List[Claim]:
        with self._lock:
            return sorted((c for c in self._claims.values() if c.user_id == user_id), key=lambda c: c.id)

    def next_bill_id(self) -> int:
        with self._lock:
            self._bill_seq += 1
            return self._bill_seq

    def next_claim_id(self) -> int:
        with self._lock:
            self._claim_seq += 1
            return self._claim_seq

    @classmethod
    def from_dump(cls, data: Mapping[str, Any]) -> "InMemorySettlementRepository":
        """Load {"users": [...], "orders": [...]} as exported by the trading backend (camelCase keys)."""
        repo = cls()
        for raw in data.get("users", []):
            repo.upsert_user(user_from_dict(raw))
        for raw in data.get("orders", []):
            repo.upsert_order(order_from_dict(raw))
        return repo


def user_from_dict(raw: Mapping[str, Any]) -> UserAccount:
    voucher = None
    v = raw.get("voucher")
    if v:
        voucher = Voucher(
            type=VoucherType(str(v["type"]).upper()),
            value=float(v["value"]),
            status=v.get("status", "inuse"),
            expire_at=v.get("expireAt"),
        )
    return UserAccount(
        id=int(raw["id"]),
        admin_commission_percent=float(raw.get("adminCommissionPercent", 0)),
        referral_commission_percent=float(raw.get("referralCommissionPercent", 0)),
        referral_user_id=raw.get("referralUserId"),
        telegram_chat_id=str(raw.get("telegramChatId") or ""),
        voucher=voucher,
        active=bool(raw.get("isActive", True)),
    )


def order_from_dict(raw: Mapping[str, Any]) -> Order:
    try:
        return Order(
            order_id=int(raw["id"]),
            side=Side(str(raw.get("side", "BUY")).upper()),
            entry_price=float(raw.get("entryPrice", 0)),
            qty=float(raw.get("quantity", raw.get("qty", 0))),
            budget=float(raw.get("budget", 0)),
            strategy_id=int(raw.get("strategyId", 0)),
            token=str(raw.get("token", "")).upper(),
            ladder=(),
            leverage=int(raw.get("leverage", 1)),
            fee=float(raw.get("fee", 0)),
            mark_price=raw.get("markPrice"),
            net_profit=float(raw.get("netProfit", 0)),
            status=OrderStatus(str(raw.get("status", "ACTIVE")).upper()),
            opened_at=raw.get("openedAt"),
            closed_at=raw.get("closedAt"),
            user_id=raw.get("userId"),
            bill_id=raw.get("billId"),
        )
    except (KeyError, ValueError) as e:
        raise SettlementError(f"malformed order record {raw.get('id')!r}: {e}") from e
