import os
import logging
from datetime import datetime, timedelta
from decimal import Decimal

import boto3
from boto3.dynamodb.conditions import Key

from lambdas.common.models import RequestContext
from lambdas.score.risk import FRAUD_RULES, RiskSignals

log = logging.getLogger(__name__)

# ----------------- Config -----------------
REGION = os.environ.get("AWS_REGION", "ap-south-1")
TRANSACTIONS_TABLE = os.environ.get("TRANSACTIONS_TABLE", "Emergency-Transactions")
ATTEMPTS_TABLE = os.environ.get("ATTEMPTS_TABLE", "Emergency-PaymentAttempts")

AVERAGE_WINDOW = timedelta(days=30)
DEVICE_WINDOW = timedelta(days=90)
LOCATION_WINDOW = timedelta(days=30)


def _query_all(table, **kwargs):
    items = []
    while True:
        resp = table.query(**kwargs)
        items.extend(resp.get("Items", []))
        last = resp.get("LastEvaluatedKey")
        if not last:
            return items
        kwargs["ExclusiveStartKey"] = last


class DynamoSignalSource:
    """Behavioral signals for one user, read from committed transactions and failed attempts."""

    def __init__(self, transactions_table=None, attempts_table=None):
        if transactions_table is None or attempts_table is None:
            dynamodb = boto3.resource("dynamodb", region_name=REGION)
            transactions_table = transactions_table or dynamodb.Table(TRANSACTIONS_TABLE)
            attempts_table = attempts_table or dynamodb.Table(ATTEMPTS_TABLE)
        self.transactions = transactions_table
        self.attempts = attempts_table

    def gather(self, user_id: str, amount: Decimal, context: RequestContext, now: datetime) -> RiskSignals:
        history = _query_all(self.transactions, KeyConditionExpression=Key("user_id").eq(user_id))
        completed = [t for t in history if t.get("status") == "completed"]

        def since(delta):
            cutoff = (now - delta).isoformat()
            return [t for t in completed if str(t.get("created_at", "")) >= cutoff]

        recent = since(AVERAGE_WINDOW)
        average = None
        if recent:
            average = sum(Decimal(str(t["amount"])) for t in recent) / len(recent)

        hourly = len(since(timedelta(seconds=FRAUD_RULES["HIGH_FREQUENCY"]["window_seconds"])))
        rapid = len(since(timedelta(seconds=FRAUD_RULES["RAPID_SUCCESSION"]["window_seconds"])))

        known_agents = {t.get("user_agent") for t in since(DEVICE_WINDOW)}
        is_new_device = not context.user_agent or context.user_agent not in known_agents

        distinct_ips = {t.get("ip_address") for t in since(LOCATION_WINDOW) if t.get("ip_address")}
        unusual_location = len(distinct_ips) > FRAUD_RULES["UNUSUAL_LOCATION"]["distinct_ips"]

        failed_cutoff = (now - timedelta(seconds=FRAUD_RULES["MULTIPLE_FAILED_ATTEMPTS"]["window_seconds"])).isoformat()
        failed = _query_all(
            self.attempts,
            KeyConditionExpression=Key("user_id").eq(user_id) & Key("attempt_id").gte(failed_cutoff),
        )

        signals = RiskSignals(
            amount=amount,
            historical_average=average,
            hourly_count=hourly,
            rapid_count=rapid,
            failed_count=len(failed),
            is_new_device=is_new_device,
            is_unusual_location=unusual_location,
            ip_address=context.ip_address,
            transaction_time=now,
        )
        log.info("Signals for %s: avg=%s hourly=%d rapid=%d failed=%d new_device=%s",
                 user_id, average, hourly, rapid, len(failed), is_new_device)
        return signals
