"""Collaborators the payment pipeline is built from. Real ones talk to AWS, tests pass fakes."""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Protocol

from lambdas.common.models import Booking, RequestContext
from lambdas.pricing.eligibility import HospitalPricing
from lambdas.score.risk import RiskSignals


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class Persistence(Protocol):
    def get_booking(self, booking_id: str) -> Optional[Booking]: ...

    def get_user_balance(self, user_id: str) -> Decimal: ...

    def get_hospital_pricing(self, hospital_id: str, resource_type: str) -> Optional[HospitalPricing]: ...

    def transaction_exists(self, user_id: str, transaction_ref: str) -> bool: ...

    def record_failed_attempt(self, user_id: str, booking_id: str, reason: str, at: datetime) -> None: ...

    def commit_payment(self, commit) -> object: ...


class FraudSignalSource(Protocol):
    def gather(self, user_id: str, amount: Decimal, context: RequestContext, now: datetime) -> RiskSignals: ...


class AuditSink(Protocol):
    def record(self, event) -> dict: ...


class Escalator(Protocol):
    def escalate(self, event, error: Exception) -> None: ...

    def manual_review(self, event) -> None: ...
