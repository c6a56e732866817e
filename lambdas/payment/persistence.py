import os
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from lambdas.common.models import Booking, CANCELLED, PAID, PENDING, Transaction
from lambdas.common.results import Err, ErrorKind, Ok
from lambdas.pricing.eligibility import HospitalPricing, PricingQuote

log = logging.getLogger(__name__)

# ----------------- Config -----------------
REGION = os.environ.get("AWS_REGION", "ap-south-1")
BOOKINGS_TABLE = os.environ.get("BOOKINGS_TABLE", "Emergency-Bookings")
PRICING_TABLE = os.environ.get("PRICING_TABLE", "Emergency-HospitalPricing")
BALANCES_TABLE = os.environ.get("BALANCES_TABLE", "Emergency-Balances")
TRANSACTIONS_TABLE = os.environ.get("TRANSACTIONS_TABLE", "Emergency-Transactions")
ATTEMPTS_TABLE = os.environ.get("ATTEMPTS_TABLE", "Emergency-PaymentAttempts")

PLATFORM_ACCOUNT = "platform"


class CommitConflictError(Exception):
    """The atomic commit was cancelled for a reason the pipeline cannot classify."""


def hospital_account(hospital_id: str) -> str:
    return f"hospital#{hospital_id}"


@dataclass
class PaymentCommit:
    transaction: Transaction
    quote: PricingQuote
    apply_add_on: bool


class DynamoPersistence:

    def __init__(self, dynamodb=None):
        self.dynamodb = dynamodb or boto3.resource("dynamodb", region_name=REGION)
        # the resource's client serializes plain Python values itself
        self.client = self.dynamodb.meta.client
        self.bookings = self.dynamodb.Table(BOOKINGS_TABLE)
        self.pricing = self.dynamodb.Table(PRICING_TABLE)
        self.balances = self.dynamodb.Table(BALANCES_TABLE)
        self.transactions = self.dynamodb.Table(TRANSACTIONS_TABLE)
        self.attempts = self.dynamodb.Table(ATTEMPTS_TABLE)

    # ---------- Reads ----------
    def get_booking(self, booking_id: str) -> Optional[Booking]:
        resp = self.bookings.get_item(Key={"booking_id": booking_id}, ConsistentRead=True)
        if "Item" not in resp:
            return None
        return Booking.from_item(resp["Item"])

    def get_user_balance(self, user_id: str) -> Decimal:
        resp = self.balances.get_item(Key={"owner_id": user_id}, ConsistentRead=True)
        return Decimal(str(resp.get("Item", {}).get("balance", 0)))

    def get_hospital_pricing(self, hospital_id: str, resource_type: str) -> Optional[HospitalPricing]:
        resp = self.pricing.get_item(Key={"hospital_id": hospital_id, "resource_type": resource_type})
        if "Item" not in resp:
            return None
        return HospitalPricing.from_item(resp["Item"])

    def transaction_exists(self, user_id: str, transaction_ref: str) -> bool:
        resp = self.transactions.get_item(
            Key={"user_id": user_id, "transaction_ref": transaction_ref},
            ConsistentRead=True,
        )
        return "Item" in resp

    # ---------- Writes ----------
    def record_failed_attempt(self, user_id: str, booking_id: str, reason: str, at: datetime) -> None:
        self.attempts.put_item(Item={
            "user_id": user_id,
            "attempt_id": f"{at.isoformat()}#{uuid.uuid4().hex}",
            "booking_id": str(booking_id),
            "reason": reason,
        })

    def commit_payment(self, commit: PaymentCommit):
        """
        Debit, credit, mark paid and write the transaction in one DynamoDB transaction.

        The debit is applied to the stored balance, not to the balance read
        earlier, so a payment committed in between only matters when it left
        too little. Returns Ok(Transaction) or Err for the three conditions a
        concurrent request can break. Nothing is written unless everything is.
        """
        txn = commit.transaction
        quote = commit.quote
        ref_key = {"user_id": txn.user_id, "transaction_ref": txn.transaction_ref}

        booking_set = "SET payment_status = :paid, paid_at = :at, transaction_ref = :ref, payment_amount = :total"
        booking_vals = {
            ":paid": PAID,
            ":pending": PENDING,
            ":at": txn.created_at,
            ":ref": txn.transaction_ref,
            ":total": quote.total_expected,
        }
        if commit.apply_add_on:
            booking_set += ", rapid_assistance_enabled = :ra, rapid_assistance_charge = :rac"
            booking_vals[":ra"] = True
            booking_vals[":rac"] = quote.add_on_charge

        items = [
            {"Put": {
                "TableName": self.transactions.name,
                "Item": txn.to_item(),
                "ConditionExpression": "attribute_not_exists(transaction_ref)",
            }},
            {"Update": {
                "TableName": self.bookings.name,
                "Key": {"booking_id": txn.booking_id},
                "UpdateExpression": booking_set,
                "ConditionExpression": "payment_status = :pending",
                "ExpressionAttributeValues": booking_vals,
            }},
            {"Update": {
                "TableName": self.balances.name,
                "Key": {"owner_id": txn.user_id},
                "UpdateExpression": "SET #bal = #bal - :amt",
                "ConditionExpression": "#bal >= :amt",
                "ExpressionAttributeNames": {"#bal": "balance"},
                "ExpressionAttributeValues": {":amt": txn.amount},
            }},
            {"Update": {
                "TableName": self.balances.name,
                "Key": {"owner_id": hospital_account(txn.hospital_id)},
                "UpdateExpression": "ADD #bal :amt",
                "ExpressionAttributeNames": {"#bal": "balance"},
                "ExpressionAttributeValues": {":amt": quote.hospital_share},
            }},
            {"Update": {
                "TableName": self.balances.name,
                "Key": {"owner_id": PLATFORM_ACCOUNT},
                "UpdateExpression": "ADD #bal :amt",
                "ExpressionAttributeNames": {"#bal": "balance"},
                "ExpressionAttributeValues": {":amt": quote.platform_share},
            }},
        ]

        try:
            self.client.transact_write_items(TransactItems=items)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "TransactionCanceledException":
                log.exception("❌ DynamoDB commit failed: %s", e)
                raise
            reasons = [r.get("Code") for r in e.response.get("CancellationReasons", [])]
            log.warning("Commit cancelled for %s (reasons=%s)", ref_key, reasons)
            return self._classify_cancellation(txn, reasons)

        log.info("✅ Payment committed: booking=%s ref=%s amount=%s",
                 txn.booking_id, txn.transaction_ref, txn.amount)
        return Ok(txn)

    def _classify_cancellation(self, txn: Transaction, reasons):
        failed = lambda i: len(reasons) > i and reasons[i] == "ConditionalCheckFailed"

        if failed(0) or (not reasons and self.transaction_exists(txn.user_id, txn.transaction_ref)):
            return Err(ErrorKind.DUPLICATE_TRANSACTION, "Duplicate transaction ID")

        booking = self.get_booking(txn.booking_id)
        if failed(1) or (not reasons and booking and booking.payment_status != PENDING):
            if booking and booking.payment_status == CANCELLED:
                return Err(ErrorKind.ALREADY_PROCESSED, "Cannot pay for a cancelled booking")
            return Err(ErrorKind.ALREADY_PROCESSED, "Booking has already been paid")

        if failed(2) or self.get_user_balance(txn.user_id) < txn.amount:
            return Err(ErrorKind.INSUFFICIENT_BALANCE, "Insufficient balance")

        raise CommitConflictError(
            f"Commit for {txn.transaction_ref} cancelled without a recognizable cause: {reasons}"
        )
