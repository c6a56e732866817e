from datetime import timedelta
from decimal import Decimal

from conftest import NOON_DHAKA
from lambdas.common.models import RequestContext
from lambdas.score.signals import DynamoSignalSource

CTX = RequestContext(ip_address="103.4.145.10", user_agent="bKash/5.1 Android")


def _txn(t, ref, minutes_ago, amount=1000, status="completed", **kw):
    item = {
        "user_id": "user_001",
        "transaction_ref": ref,
        "amount": Decimal(str(amount)),
        "status": status,
        "created_at": (NOON_DHAKA - timedelta(minutes=minutes_ago)).isoformat(),
    }
    item.update(kw)
    t["Transactions"].put_item(Item=item)

def _source(tables):
    return DynamoSignalSource(tables["Transactions"], tables["PaymentAttempts"])

def test_no_history(tables):
    s = _source(tables).gather("user_001", Decimal("1000"), CTX, NOON_DHAKA)
    assert s.historical_average is None
    assert (s.hourly_count, s.rapid_count, s.failed_count) == (0, 0, 0)
    assert s.is_new_device
    assert not s.is_unusual_location
    assert s.transaction_time == NOON_DHAKA
    assert s.ip_address == "103.4.145.10"

def test_counts_average_and_device(tables):
    _txn(tables, "R1", 2, amount=1000, user_agent="bKash/5.1 Android")
    _txn(tables, "R2", 4, amount=2000)
    _txn(tables, "R3", 30, amount=3000)
    _txn(tables, "R4", 60 * 24 * 40, amount=90000)          # outside the 30 day average
    _txn(tables, "R5", 1, amount=50000, status="failed")     # not a completed payment

    s = _source(tables).gather("user_001", Decimal("1000"), CTX, NOON_DHAKA)
    assert s.historical_average == Decimal("2000")
    assert s.hourly_count == 3
    assert s.rapid_count == 2
    assert not s.is_new_device

def test_many_distinct_ips_is_unusual_location(tables):
    for i in range(11):
        _txn(tables, f"IP{i:02d}", 120 + i, ip_address=f"8.8.{i}.1")
    s = _source(tables).gather("user_001", Decimal("1000"), CTX, NOON_DHAKA)
    assert s.is_unusual_location

def test_failed_attempts_window(tables, ddb_resource):
    from lambdas.payment.persistence import DynamoPersistence
    store = DynamoPersistence(ddb_resource)
    store.record_failed_attempt("user_001", "b1", "PaymentAmountMismatch", NOON_DHAKA - timedelta(minutes=5))
    store.record_failed_attempt("user_001", "b1", "PaymentAmountMismatch", NOON_DHAKA - timedelta(minutes=10))
    store.record_failed_attempt("user_001", "b1", "PaymentAmountMismatch", NOON_DHAKA - timedelta(minutes=45))
    store.record_failed_attempt("user_002", "b9", "NotFound", NOON_DHAKA)

    s = _source(tables).gather("user_001", Decimal("1000"), CTX, NOON_DHAKA)
    assert s.failed_count == 2

def test_missing_user_agent_counts_as_new_device(tables):
    _txn(tables, "R1", 2, user_agent="bKash/5.1 Android")
    s = _source(tables).gather("user_001", Decimal("1000"), RequestContext(), NOON_DHAKA)
    assert s.is_new_device
