"""Unit tests for settlement (commission, bills, claims)."""

import copy

import pytest

from conftest import DAY_MS, HOUR_MS, JAN_1_2024
from ladder_engine.core.errors import SettlementError, StatusTransitionError
from ladder_engine.core.types import Order, OrderStatus, Side
from ladder_engine.settlement import (
    BillStatus,
    ClaimStatus,
    InMemorySettlementRepository,
    SettlementAggregator,
    UserAccount,
    Voucher,
    VoucherType,
    apply_voucher,
    commission_for,
    normalize_percent,
    reconcile,
)

T = JAN_1_2024 + 10 * DAY_MS
NOW = T + 2 * DAY_MS


def closed(order_id, user_id, net, closed_at, status=OrderStatus.FINISHED):
    return Order(
        order_id=order_id, side=Side.BUY, entry_price=100.0, qty=1.0, budget=100.0,
        strategy_id=1, token="BTC", ladder=(), net_profit=net, status=status,
        opened_at=closed_at - HOUR_MS, closed_at=closed_at, user_id=user_id,
    )


@pytest.fixture
def repo():
    r = InMemorySettlementRepository()
    r.upsert_user(UserAccount(id=1, admin_commission_percent=30, telegram_chat_id="chat-1"))
    r.upsert_user(UserAccount(id=2, admin_commission_percent=0.08, referral_commission_percent=0.02))
    return r


@pytest.fixture
def sent():
    return []


@pytest.fixture
def aggregator(repo, sent):
    def notifier(chat_id, text):
        sent.append((chat_id, text))
        return True
    return SettlementAggregator(repo, notifier=notifier, clock=lambda: NOW)


# --- commission ---

def test_normalize_percent():
    assert normalize_percent(30) == pytest.approx(0.30)
    assert normalize_percent(0.30) == pytest.approx(0.30)
    assert normalize_percent(1) == 1.0
    assert normalize_percent(0) == 0.0
    assert normalize_percent(-5) == 0.0


def test_commission_whole_percent_and_fraction_agree():
    assert commission_for(100.0, 30, 0) == pytest.approx(30.0)
    assert commission_for(100.0, 0.30, 0) == pytest.approx(30.0)
    assert commission_for(100.0, 8, 0.02) == pytest.approx(10.0)


def test_no_commission_without_profit():
    assert commission_for(0.0, 30, 5) == 0.0
    assert commission_for(-50.0, 30, 5) == 0.0


def test_voucher_fixed_discount_split_pro_rata():
    admin, ref = apply_voucher(8, 2, Voucher(VoucherType.DC, 2), NOW)
    assert admin == pytest.approx(0.064)
    assert ref == pytest.approx(0.016)


def test_voucher_percent_discount():
    admin, ref = apply_voucher(8, 2, Voucher(VoucherType.DCP, 10), NOW)
    assert admin == pytest.approx(0.072)
    assert ref == pytest.approx(0.018)


def test_voucher_ignored_when_expired_or_unused():
    assert apply_voucher(8, 2, Voucher(VoucherType.DCP, 10, expire_at=NOW - 1), NOW) == (0.08, 0.02)
    assert apply_voucher(8, 2, Voucher(VoucherType.DCP, 10, status="used"), NOW) == (0.08, 0.02)
    assert apply_voucher(8, 2, None, NOW) == (0.08, 0.02)


def test_voucher_never_negative():
    assert apply_voucher(8, 2, Voucher(VoucherType.DC, 50), NOW) == (0.0, 0.0)


# --- aggregation ---

def test_settle_creates_bill_and_claim(repo, aggregator):
    repo.upsert_order(closed(1, 1, 100.0, T))
    res = aggregator.settle(1)
    assert res.created is True
    bill = res.bill
    assert bill.window_start == T - 2 * DAY_MS
    assert bill.window_end == T + 1 * DAY_MS
    assert bill.order_ids == [1]
    assert bill.net_profit == 100.0
    assert bill.commission == pytest.approx(30.0)
    assert bill.status is BillStatus.NEW
    assert res.claim.amount == 100.0
    assert res.claim.bill_ids == [bill.id]
    assert repo.get_order(1).bill_id == bill.id


def test_window_groups_neighbouring_orders(repo, aggregator):
    repo.upsert_order(closed(1, 1, 100.0, T))
    repo.upsert_order(closed(2, 1, -30.0, T + 12 * HOUR_MS, OrderStatus.EXPIRED))
    repo.upsert_order(closed(3, 1, 50.0, T - 36 * HOUR_MS))
    repo.upsert_order(closed(4, 1, 20.0, T + 3 * DAY_MS))
    repo.upsert_order(closed(5, 2, 999.0, T))  # other user
    bill = aggregator.settle(1).bill
    assert bill.order_ids == [1, 2, 3]
    assert bill.net_profit == pytest.approx(120.0)
    assert repo.get_order(4).bill_id is None
    assert repo.get_order(5).bill_id is None


def test_settle_is_idempotent(repo, aggregator):
    for i, ts in enumerate([T, T + HOUR_MS, T + 3 * DAY_MS, T + 4 * DAY_MS], start=1):
        repo.upsert_order(closed(i, 1, 10.0 * i, ts))
    first = aggregator.settle_all([1, 2, 3, 4])
    totals = [(r.bill.id, r.bill.net_profit, r.claim.amount) for r in first]
    again = aggregator.settle_all([4, 3, 2, 1])
    assert all(r.created is False for r in again)
    assert sorted((r.bill.id, r.bill.net_profit, r.claim.amount) for r in again) == sorted(totals)
    claim = repo.claims_for_user(1)[0]
    assert claim.amount == pytest.approx(100.0)
    assert len(repo.bills_for_user(1)) == 2
    assert reconcile(repo, 1) == []


def test_second_bill_rolls_into_open_claim(repo, aggregator):
    repo.upsert_order(closed(1, 1, 100.0, T))
    repo.upsert_order(closed(2, 1, 40.0, T + 5 * DAY_MS))
    r1 = aggregator.settle(1)
    r2 = aggregator.settle(2)
    assert r2.created is True
    assert r2.bill.id != r1.bill.id
    assert r2.claim.id == r1.claim.id
    assert r2.claim.amount == pytest.approx(140.0)
    assert r2.claim.bill_ids == [r1.bill.id, r2.bill.id]


def test_processing_bill_is_not_reused(repo, aggregator):
    repo.upsert_order(closed(1, 1, 100.0, T))
    bill = aggregator.settle(1).bill
    bill.transition(BillStatus.PROCESSING)
    repo.upsert_order(closed(2, 1, 10.0, T + HOUR_MS))
    res = aggregator.settle(2)
    assert res.created is True
    assert res.bill.order_ids == [2]
    assert bill.order_ids == [1]


def test_losing_bill_has_no_commission(repo, aggregator):
    repo.upsert_order(closed(1, 1, -80.0, T, OrderStatus.EXPIRED))
    bill = aggregator.settle(1).bill
    assert bill.net_profit == -80.0
    assert bill.commission == 0.0
    d = bill.to_dict()
    assert d["adminCommissionPercent"] == 0.0
    assert d["referralCommissionPercent"] == 0.0


def test_bill_uses_voucher_at_creation(repo, aggregator):
    repo.upsert_user(UserAccount(id=3, admin_commission_percent=8, referral_commission_percent=2,
                                 voucher=Voucher(VoucherType.DCP, 10)))
    repo.upsert_order(closed(1, 3, 100.0, T))
    bill = aggregator.settle(1).bill
    assert bill.admin_commission_percent == pytest.approx(0.072)
    assert bill.commission == pytest.approx(9.0)


def test_concurrent_settlement_never_double_counts(repo, aggregator):
    oid = 0
    for user in (1, 2):
        for k in range(20):
            oid += 1
            repo.upsert_order(closed(oid, user, float(k - 5), T + k * 6 * HOUR_MS))
    ids = list(range(1, oid + 1)) * 3
    aggregator.settle_all(ids, max_workers=8)
    for user in (1, 2):
        assert reconcile(repo, user) == []
        billed = [o for o in repo.orders() if o.user_id == user]
        assert all(o.bill_id is not None for o in billed)
        bills = repo.bills_for_user(user)
        assert sum(len(b.order_ids) for b in bills) == 20
        assert sum(b.net_profit for b in bills) == pytest.approx(sum(o.net_profit for o in billed))
        claims = repo.claims_for_user(user)
        assert len(claims) == 1
        assert claims[0].amount == pytest.approx(sum(b.net_profit for b in bills))


def test_settle_errors(repo, aggregator):
    with pytest.raises(SettlementError, match="unknown order"):
        aggregator.settle(42)
    open_order = closed(1, 1, 0.0, T)
    open_order.status = OrderStatus.ACTIVE
    repo.upsert_order(open_order)
    with pytest.raises(SettlementError, match="not closed"):
        aggregator.settle(1)
    repo.upsert_order(closed(2, None, 5.0, T))
    with pytest.raises(SettlementError, match="no user"):
        aggregator.settle(2)
    repo.upsert_order(closed(3, 77, 5.0, T))
    with pytest.raises(SettlementError, match="unknown user"):
        aggregator.settle(3)


def test_detach_bill_recomputes_claim(repo, aggregator):
    repo.upsert_order(closed(1, 1, 100.0, T))
    repo.upsert_order(closed(2, 1, 40.0, T + 5 * DAY_MS))
    b1 = aggregator.settle(1).bill
    aggregator.settle(2)
    claim = aggregator.detach_bill(b1.id)
    assert claim.bill_ids == [2]
    assert claim.amount == pytest.approx(40.0)
    assert b1.claim_id is None
    assert aggregator.detach_bill(b1.id) is None
    assert reconcile(repo, 1) == []


def test_detach_from_processing_claim_rejected(repo, aggregator):
    repo.upsert_order(closed(1, 1, 100.0, T))
    res = aggregator.settle(1)
    res.claim.transition(ClaimStatus.PROCESSING)
    with pytest.raises(StatusTransitionError):
        aggregator.detach_bill(res.bill.id)


def test_status_transitions(repo, aggregator):
    repo.upsert_order(closed(1, 1, 100.0, T))
    res = aggregator.settle(1)
    with pytest.raises(StatusTransitionError):
        res.bill.transition(BillStatus.COMPLETED)
    res.bill.transition(BillStatus.PROCESSING)
    res.bill.transition(BillStatus.COMPLETED)
    with pytest.raises(StatusTransitionError):
        res.bill.transition(BillStatus.NEW)
    res.claim.transition(ClaimStatus.PROCESSING)
    res.claim.transition(ClaimStatus.REJECTED)
    with pytest.raises(StatusTransitionError):
        res.claim.transition(ClaimStatus.FINISHED)


def test_reconcile_reports_drift(repo, aggregator):
    repo.upsert_order(closed(1, 1, 100.0, T))
    bill = aggregator.settle(1).bill
    bill.net_profit = 55.0
    drifts = reconcile(repo, 1)
    kinds = {d.kind for d in drifts}
    assert kinds == {"bill", "claim"}
    assert drifts[0].expected == pytest.approx(100.0)


def test_overdue_users_and_suspension(repo, aggregator):
    repo.upsert_order(closed(1, 1, 100.0, T))
    aggregator.settle(1)
    assert aggregator.overdue_users(NOW + 6 * DAY_MS) == []
    assert aggregator.overdue_users(NOW + 7 * DAY_MS) == [1]
    assert aggregator.suspend_overdue_users(NOW + 8 * DAY_MS) == [1]
    assert repo.get_user(1).active is False
    assert aggregator.suspend_overdue_users(NOW + 8 * DAY_MS) == []


def test_notification_on_new_bill_only(repo, aggregator, sent):
    repo.upsert_order(closed(1, 1, 100.0, T))
    repo.upsert_order(closed(2, 1, 10.0, T + HOUR_MS))
    bill = aggregator.settle(1).bill
    aggregator.settle(2)
    assert len(sent) == 1
    chat_id, text = sent[0]
    assert chat_id == "chat-1"
    assert bill.due_date(7).isoformat() in text
    assert "33.00" in text


def test_no_notification_without_chat_id(repo, aggregator, sent):
    repo.upsert_order(closed(1, 2, 100.0, T))
    aggregator.settle(1)
    assert sent == []


def test_repository_from_dump():
    repo = InMemorySettlementRepository.from_dump({
        "users": [{"id": 1, "adminCommissionPercent": 30, "voucher": {"type": "dcp", "value": 10}}],
        "orders": [
            {"id": 5, "userId": 1, "side": "sell", "entryPrice": 100, "quantity": 2,
             "netProfit": 12.5, "status": "FINISHED", "closedAt": T},
        ],
    })
    order = repo.get_order(5)
    assert order.side is Side.SELL
    assert order.status is OrderStatus.FINISHED
    assert order.net_profit == 12.5
    assert repo.get_user(1).voucher.type is VoucherType.DCP
    with pytest.raises(SettlementError):
        InMemorySettlementRepository.from_dump({"orders": [{"id": 1, "status": "DONE"}]})


class CopyingRepository(InMemorySettlementRepository):
    """Hands out copies of bills; `stale` pins the next read of a bill to an older snapshot."""

    def __init__(self):
        super().__init__()
        self.stale = {}

    def get_bill(self, bill_id):
        if bill_id in self.stale:
            return self.stale.pop(bill_id)
        bill = super().get_bill(bill_id)
        return copy.deepcopy(bill) if bill is not None else None


def test_detach_bill_rereads_bill_under_lock():
    repo = CopyingRepository()
    repo.upsert_user(UserAccount(id=1, admin_commission_percent=30))
    repo.upsert_order(closed(1, 1, 100.0, T))
    agg = SettlementAggregator(repo, clock=lambda: NOW)
    bill = agg.settle(1).bill
    unattached = copy.deepcopy(bill)
    unattached.claim_id = None
    repo.stale[bill.id] = unattached

    claim = agg.detach_bill(bill.id)
    assert claim is not None
    assert claim.bill_ids == []
    assert claim.amount == 0.0
    assert repo.get_bill(bill.id).claim_id is None
