"""
Rule-based fraud risk scoring for payment attempts.

Each rule adds a fixed weight when its threshold is crossed, so raising any
single signal can only keep or raise the score.
"""
import os
import logging
import ipaddress
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import FrozenSet, Optional

log = logging.getLogger(__name__)

# ----------------- Config -----------------
LOCAL_UTC_OFFSET_HOURS = int(os.environ.get("RISK_LOCAL_UTC_OFFSET_HOURS", "6"))

MINIMAL, LOW, MEDIUM, HIGH, CRITICAL = "MINIMAL", "LOW", "MEDIUM", "HIGH", "CRITICAL"
ALLOW, CHALLENGE, BLOCK = "ALLOW", "CHALLENGE", "BLOCK"

RISK_THRESHOLDS = {LOW: 20, MEDIUM: 50, HIGH: 70, CRITICAL: 90}

FRAUD_RULES = {
    "LARGE_AMOUNT": {"threshold": Decimal("50000"), "weight": 20},
    "UNUSUAL_AMOUNT": {"multiplier": 5, "weight": 15},
    "HIGH_FREQUENCY": {"threshold": 5, "window_seconds": 3600, "weight": 25},
    "RAPID_SUCCESSION": {"threshold": 3, "window_seconds": 300, "weight": 30},
    "MULTIPLE_FAILED_ATTEMPTS": {"threshold": 3, "window_seconds": 1800, "weight": 35},
    "SUSPICIOUS_IP": {"weight": 25},
    "NEW_DEVICE": {"weight": 15},
    "UNUSUAL_LOCATION": {"distinct_ips": 10, "weight": 20},
    "UNUSUAL_TIME": {"start_hour": 2, "end_hour": 5, "weight": 10},
}

# flags that force BLOCK whatever the tier says
ESCALATING_FLAGS = {"MULTIPLE_FAILED_ATTEMPTS"}

_MESSAGES = {
    CRITICAL: "Transaction blocked due to critical fraud risk",
    HIGH: "Transaction blocked due to high fraud risk",
    MEDIUM: "Additional verification required",
    LOW: "Transaction allowed with low risk monitoring",
    MINIMAL: "Transaction approved",
}


@dataclass
class RiskSignals:
    amount: Decimal
    historical_average: Optional[Decimal] = None
    hourly_count: int = 0
    rapid_count: int = 0
    failed_count: int = 0
    is_new_device: bool = False
    is_unusual_location: bool = False
    ip_address: Optional[str] = None
    transaction_time: Optional[datetime] = None


@dataclass(frozen=True)
class Recommendation:
    action: str
    requires_manual_review: bool
    message: str = ""


@dataclass(frozen=True)
class FraudAssessment:
    risk_score: int
    risk_level: str
    fraud_flags: FrozenSet[str] = field(default_factory=frozenset)
    recommendation: Recommendation = Recommendation(ALLOW, False)

    def to_dict(self) -> dict:
        return {
            "risk_score": self.risk_score,
            "risk_level": self.risk_level,
            "fraud_flags": sorted(self.fraud_flags),
            "recommendation": {
                "action": self.recommendation.action,
                "requires_manual_review": self.recommendation.requires_manual_review,
            },
        }


def is_suspicious_ip(ip) -> bool:
    """Private, loopback, reserved and otherwise non-routable addresses."""
    try:
        addr = ipaddress.ip_address(str(ip).strip())
    except ValueError:
        return True
    return (
        addr.is_private
        or addr.is_loopback
        or addr.is_reserved
        or addr.is_link_local
        or addr.is_multicast
        or addr.is_unspecified
    )


def _local_hour(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment.astimezone(timezone.utc) + timedelta(hours=LOCAL_UTC_OFFSET_HOURS)).hour


def score(signals: RiskSignals):
    """Return (risk_score, flags)."""
    total = 0
    flags = set()

    def hit(flag):
        nonlocal total
        total += FRAUD_RULES[flag]["weight"]
        flags.add(flag)

    amount = Decimal(str(signals.amount))
    if amount > FRAUD_RULES["LARGE_AMOUNT"]["threshold"]:
        hit("LARGE_AMOUNT")
    avg = signals.historical_average
    if avg and amount > Decimal(str(avg)) * FRAUD_RULES["UNUSUAL_AMOUNT"]["multiplier"]:
        hit("UNUSUAL_AMOUNT")

    if signals.hourly_count >= FRAUD_RULES["HIGH_FREQUENCY"]["threshold"]:
        hit("HIGH_FREQUENCY")
    if signals.rapid_count >= FRAUD_RULES["RAPID_SUCCESSION"]["threshold"]:
        hit("RAPID_SUCCESSION")
    if signals.failed_count >= FRAUD_RULES["MULTIPLE_FAILED_ATTEMPTS"]["threshold"]:
        hit("MULTIPLE_FAILED_ATTEMPTS")

    if signals.ip_address is not None and is_suspicious_ip(signals.ip_address):
        hit("SUSPICIOUS_IP")
    if signals.is_new_device:
        hit("NEW_DEVICE")
    if signals.is_unusual_location:
        hit("UNUSUAL_LOCATION")

    if signals.transaction_time is not None:
        rule = FRAUD_RULES["UNUSUAL_TIME"]
        if rule["start_hour"] <= _local_hour(signals.transaction_time) <= rule["end_hour"]:
            hit("UNUSUAL_TIME")

    return max(0, min(total, 100)), flags


def determine_risk_level(risk_score) -> str:
    if risk_score >= RISK_THRESHOLDS[CRITICAL]:
        return CRITICAL
    if risk_score >= RISK_THRESHOLDS[HIGH]:
        return HIGH
    if risk_score >= RISK_THRESHOLDS[MEDIUM]:
        return MEDIUM
    if risk_score >= RISK_THRESHOLDS[LOW]:
        return LOW
    return MINIMAL


def get_recommendation(risk_level: str, fraud_flags) -> Recommendation:
    if ESCALATING_FLAGS & set(fraud_flags or ()):
        return Recommendation(BLOCK, True, "Transaction blocked after repeated failed attempts")
    if risk_level in (CRITICAL, HIGH):
        return Recommendation(BLOCK, True, _MESSAGES[risk_level])
    if risk_level == MEDIUM:
        return Recommendation(CHALLENGE, False, _MESSAGES[MEDIUM])
    return Recommendation(ALLOW, False, _MESSAGES.get(risk_level, _MESSAGES[MINIMAL]))


def assess(signals: RiskSignals) -> FraudAssessment:
    risk_score, flags = score(signals)
    level = determine_risk_level(risk_score)
    rec = get_recommendation(level, flags)
    log.info("Risk assessed: score=%d level=%s flags=%s action=%s",
             risk_score, level, sorted(flags), rec.action)
    return FraudAssessment(risk_score, level, frozenset(flags), rec)


def fraud_statistics(items, days: int, now: datetime) -> dict:
    """Aggregate stored risk scores of transactions created in the last `days` days."""
    since = (now - timedelta(days=days)).isoformat()
    scores = [int(i.get("risk_score", 0)) for i in items if str(i.get("created_at", "")) >= since]
    total = len(scores)
    return {
        "days": days,
        "total_transactions": total,
        "high_risk_transactions": sum(1 for s in scores if s >= RISK_THRESHOLDS[HIGH]),
        "medium_risk_transactions": sum(1 for s in scores if s >= RISK_THRESHOLDS[MEDIUM]),
        "average_risk_score": round(sum(scores) / total, 2) if total else 0.0,
        "max_risk_score": max(scores) if scores else 0,
    }
