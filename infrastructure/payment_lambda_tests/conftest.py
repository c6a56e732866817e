import sys
from pathlib import Path

# ---- Make repo root importable (tests live two dirs below repo root) ----
repo_root = Path(__file__).resolve().parents[2]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

import os
from datetime import datetime, timezone
from decimal import Decimal
import pytest
from moto import mock_aws
import boto3

AWS_REGION = os.environ.get("AWS_REGION", "ap-south-1")

TABLES = {
    "Emergency-Bookings": ("booking_id", None),
    "Emergency-HospitalPricing": ("hospital_id", "resource_type"),
    "Emergency-Balances": ("owner_id", None),
    "Emergency-Transactions": ("user_id", "transaction_ref"),
    "Emergency-PaymentAttempts": ("user_id", "attempt_id"),
    "Emergency-AuditLog": ("chain", "sequence"),
}

# 12:00 in Dhaka, outside the unusual-hours window
NOON_DHAKA = datetime(2024, 10, 14, 6, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def aws_env(monkeypatch):
    monkeypatch.setenv("AWS_DEFAULT_REGION", AWS_REGION)
    monkeypatch.setenv("AWS_REGION", AWS_REGION)
    yield

@pytest.fixture(scope="function")
def moto_aws(aws_env):
    with mock_aws():
        yield

def create_table_dynamodb(dynamodb_client, name, hash_key, range_key=None):
    key_schema=[{"AttributeName": hash_key, "KeyType": "HASH"}]
    attr_defs=[{"AttributeName": hash_key, "AttributeType": "S"}]
    if range_key:
        key_schema.append({"AttributeName": range_key, "KeyType": "RANGE"})
        attr_defs.append({"AttributeName": range_key, "AttributeType": "S"})
    return dynamodb_client.create_table(
        TableName=name,
        KeySchema=key_schema,
        AttributeDefinitions=attr_defs,
        BillingMode="PAY_PER_REQUEST",
    )

@pytest.fixture()
def ddb_resource(moto_aws):
    return boto3.resource("dynamodb", region_name=AWS_REGION)

@pytest.fixture()
def ddb_client(moto_aws):
    return boto3.client("dynamodb", region_name=AWS_REGION)

@pytest.fixture()
def tables(ddb_resource):
    """All six payment tables, with booking b1 (age 67, 24h ICU at h1) priced at 800 + 200 service."""
    for name, (hash_key, range_key) in TABLES.items():
        create_table_dynamodb(ddb_resource.meta.client, name, hash_key, range_key)
    t = {name.split("-", 1)[1]: ddb_resource.Table(name) for name in TABLES}
    seed_booking(t)
    t["HospitalPricing"].put_item(Item={
        "hospital_id": "h1",
        "resource_type": "icu",
        "base_rate": 800,
        "pricing_model": "daily",
        "service_charge_rate": Decimal("0.25"),
    })
    set_balance(t, "user_001", 5000)
    return t

def seed_booking(t, booking_id="b1", **overrides):
    item = {
        "booking_id": booking_id,
        "user_id": "user_001",
        "hospital_id": "h1",
        "resource_type": "icu",
        "patient_age": 67,
        "estimated_duration_hours": 24,
        "payment_status": "pending",
        "rapid_assistance_enabled": False,
    }
    item.update(overrides)
    t["Bookings"].put_item(Item=item)
    return item

def set_balance(t, owner_id, amount):
    t["Balances"].put_item(Item={"owner_id": owner_id, "balance": Decimal(str(amount))})

def balance_of(t, owner_id):
    item = t["Balances"].get_item(Key={"owner_id": owner_id}).get("Item")
    return item["balance"] if item else None


class FixedClock:
    def __init__(self, now=NOON_DHAKA):
        self.current = now
    def now(self):
        return self.current


class FakeEscalator:
    def __init__(self, fail=False):
        self.fail = fail
        self.escalated = []
        self.reviews = []
    def escalate(self, event, error):
        self.escalated.append((event, error))
        if self.fail:
            raise RuntimeError("pager down")
    def manual_review(self, event):
        self.reviews.append(event)
        if self.fail:
            raise RuntimeError("pager down")


class FixedSignals:
    """Signal source that always reports the same behavior."""
    def __init__(self, **fields):
        self.fields = fields
        self.calls = []
    def gather(self, user_id, amount, context, now):
        from lambdas.score.risk import RiskSignals
        self.calls.append(user_id)
        return RiskSignals(amount=amount, transaction_time=now, **self.fields)


class MemoryAudit:
    def __init__(self, fail=False):
        self.fail = fail
        self.events = []
    def record(self, event):
        if self.fail:
            from lambdas.audit.audit import AuditWriteError
            raise AuditWriteError("audit table unavailable")
        self.events.append(event)
        return {"event_type": event.event_type}


class Spy:
    def __init__(self):
        self.calls = []
    def __call__(self, *a, **kw):
        self.calls.append({"args": a, "kwargs": kw})
        return "SM_spy"

@pytest.fixture()
def spy():
    return Spy()

@pytest.fixture()
def escalator():
    return FakeEscalator()

@pytest.fixture()
def authorizer(tables, ddb_resource, escalator):
    """Pipeline over moto DynamoDB with the real signal source and audit chain."""
    from lambdas.audit.audit import DynamoAuditSink
    from lambdas.payment.persistence import DynamoPersistence
    from lambdas.payment.pipeline import PaymentAuthorizer
    from lambdas.score.signals import DynamoSignalSource

    persistence = DynamoPersistence(ddb_resource)
    return PaymentAuthorizer(
        persistence=persistence,
        signals=DynamoSignalSource(persistence.transactions, persistence.attempts),
        audit=DynamoAuditSink(tables["AuditLog"]),
        escalator=escalator,
        clock=FixedClock(),
    )
