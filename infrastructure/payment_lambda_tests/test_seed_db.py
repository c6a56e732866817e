import sys, json, importlib
from pathlib import Path
from decimal import Decimal

from conftest import FixedClock, balance_of

infra_dir = Path(__file__).resolve().parents[1]
if str(infra_dir) not in sys.path:
    sys.path.insert(0, str(infra_dir))


def _seed():
    import seed_db
    importlib.reload(seed_db)
    seed_db.seed_bookings_table()
    seed_db.seed_pricing_table()
    seed_db.seed_balances_table()

def _pay(booking_id, user_id, amount, ref):
    from lambdas.payment import payment as payment_mod
    importlib.reload(payment_mod)
    payment_mod.authorizer.clock = FixedClock()
    return payment_mod.lambda_handler({
        "pathParameters": {"booking_id": booking_id},
        "requestContext": {"authorizer": {"user_id": user_id}},
        "body": json.dumps({"transaction_ref": ref, "amount": amount}),
    }, None)

def test_seeded_icu_booking_can_be_paid(tables):
    _seed()
    res = _pay("booking_001", "user_001", 1000, "SEED0001")
    assert res["statusCode"] == 200
    assert balance_of(tables, "user_001") == Decimal("9000")
    assert balance_of(tables, "hospital#hospital_dmch") == Decimal("800")

def test_seeded_operation_theatre_includes_stored_rapid_assistance(tables):
    _seed()
    # 12000 flat + 6h x 500, 10% service, 200 Rapid Assistance already on the booking
    res = _pay("booking_003", "user_003", 16700, "SEED0003")
    assert res["statusCode"] == 200
    assert balance_of(tables, "platform") == Decimal("1700")

def test_seeded_ward_booking_rejects_add_on_for_young_patient(tables):
    _seed()
    from lambdas.payment import payment as payment_mod
    importlib.reload(payment_mod)
    res = payment_mod.lambda_handler({
        "pathParameters": {"booking_id": "booking_002"},
        "requestContext": {"authorizer": {"user_id": "user_002"}},
        "body": json.dumps({"transaction_ref": "SEED0002", "amount": 3950, "rapid_assistance_requested": True}),
    }, None)
    assert res["statusCode"] == 400
    assert json.loads(res["body"])["error"]["code"] == "InvalidEligibility"
