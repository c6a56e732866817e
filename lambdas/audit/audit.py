"""
Append-only, hash-chained audit log in DynamoDB.

All entries live in one partition (chain = "audit") ordered by a zero-padded
sequence. Each entry stores the hash of its payload, the hash of the entry
before it and its own hash, so editing or deleting any stored entry breaks
verification from that point on.
"""
import os
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from lambdas.common.security import canonicalize, generate_audit_hash, sanitize_for_log

log = logging.getLogger(__name__)

# ----------------- Config -----------------
REGION = os.environ.get("AWS_REGION", "ap-south-1")
AUDIT_TABLE = os.environ.get("AUDIT_TABLE", "Emergency-AuditLog")

CHAIN = "audit"
GENESIS_HASH = "0" * 64
SEQUENCE_WIDTH = 12
MAX_APPEND_ATTEMPTS = 5

INFO, WARNING, ERROR, HIGH, CRITICAL = "INFO", "WARNING", "ERROR", "HIGH", "CRITICAL"
ESCALATED_SEVERITIES = {HIGH, CRITICAL}

# Hashed fields of an entry, in addition to entry_hash itself
_ENTRY_FIELDS = (
    "chain", "sequence", "event_type", "user_id", "ip_address", "user_agent",
    "session_id", "severity", "created_at", "payload", "payload_hash", "previous_hash",
)


class AuditWriteError(Exception):
    """The event could not be appended to the audit log."""


@dataclass
class AuditEvent:
    event_type: str
    user_id: Optional[str]
    severity: str
    created_at: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    payload: dict = field(default_factory=dict)

    @property
    def payload_hash(self) -> str:
        return generate_audit_hash(self.payload)

    def summary(self) -> dict:
        return {
            "event_type": self.event_type,
            "user_id": self.user_id,
            "severity": self.severity,
            "created_at": self.created_at,
            "payload": sanitize_for_log(self.payload),
        }


def _entry_hash(entry: dict) -> str:
    return generate_audit_hash({k: entry.get(k) for k in _ENTRY_FIELDS})


class DynamoAuditSink:

    def __init__(self, table=None):
        if table is None:
            table = boto3.resource("dynamodb", region_name=REGION).Table(AUDIT_TABLE)
        self.table = table

    def _head(self) -> Optional[dict]:
        resp = self.table.query(
            KeyConditionExpression=Key("chain").eq(CHAIN),
            ScanIndexForward=False,
            Limit=1,
            ConsistentRead=True,
        )
        items = resp.get("Items", [])
        return items[0] if items else None

    def record(self, event: AuditEvent) -> dict:
        """Append event to the chain and return the stored entry."""
        payload = sanitize_for_log(event.payload)
        for attempt in range(1, MAX_APPEND_ATTEMPTS + 1):
            try:
                head = self._head()
                seq = int(head["sequence"]) + 1 if head else 1
                entry = {
                    "chain": CHAIN,
                    "sequence": str(seq).zfill(SEQUENCE_WIDTH),
                    "event_type": event.event_type,
                    "user_id": event.user_id,
                    "ip_address": event.ip_address,
                    "user_agent": event.user_agent,
                    "session_id": event.session_id,
                    "severity": event.severity,
                    "created_at": event.created_at,
                    # canonical text keeps the payload hash stable across DynamoDB's number handling
                    "payload": canonicalize(payload),
                    "payload_hash": generate_audit_hash(payload),
                    "previous_hash": head["entry_hash"] if head else GENESIS_HASH,
                }
                entry["entry_hash"] = _entry_hash(entry)
                self.table.put_item(
                    Item={k: v for k, v in entry.items() if v is not None},
                    ConditionExpression=Attr("chain").not_exists(),
                )
                return entry
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                    log.info("Audit sequence taken, re-reading head (attempt %d)", attempt)
                    continue
                raise AuditWriteError(f"Audit write failed for {event.event_type}: {e}") from e
        raise AuditWriteError(
            f"Audit write for {event.event_type} lost the sequence race {MAX_APPEND_ATTEMPTS} times"
        )

    def entries(self):
        items = []
        kwargs = {"KeyConditionExpression": Key("chain").eq(CHAIN), "ConsistentRead": True}
        while True:
            resp = self.table.query(**kwargs)
            items.extend(resp.get("Items", []))
            if not resp.get("LastEvaluatedKey"):
                return items
            kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]


def verify_chain(items) -> dict:
    """
    Recompute every payload hash, entry hash and link of the chain.

    Returns {"valid", "entries", "broken_at", "reason"}; broken_at is the
    sequence of the first entry that does not verify.
    """
    ordered = sorted(items, key=lambda i: i["sequence"])
    previous = GENESIS_HASH
    for expected_seq, item in enumerate(ordered, start=1):
        seq = item["sequence"]
        reason = None
        if int(seq) != expected_seq:
            reason = "sequence gap"
        elif item.get("previous_hash") != previous:
            reason = "previous_hash does not link"
        elif generate_audit_hash(json.loads(item.get("payload", "{}"), parse_float=Decimal)) != item.get("payload_hash"):
            reason = "payload_hash mismatch"
        elif _entry_hash(item) != item.get("entry_hash"):
            reason = "entry_hash mismatch"
        if reason:
            log.error("❌ Audit chain broken at %s: %s", seq, reason)
            return {"valid": False, "entries": len(ordered), "broken_at": seq, "reason": reason}
        previous = item["entry_hash"]

    log.info("✅ Audit chain verified (%d entries)", len(ordered))
    return {"valid": True, "entries": len(ordered), "broken_at": None, "reason": None}
