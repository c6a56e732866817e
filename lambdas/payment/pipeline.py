"""
Payment authorization for hospital bookings.

One attempt moves RECEIVED -> VALIDATED -> PRICED -> RISK_ASSESSED and ends
COMMITTED, CHALLENGED, BLOCKED or REJECTED. Everything up to the commit is
read-only; the commit is a single conditional DynamoDB transaction, so a
rejected attempt never leaves a partial write behind. Attempts are never
retried here.
"""
import math
import uuid
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from lambdas.audit.audit import (
    AuditEvent,
    CRITICAL,
    ESCALATED_SEVERITIES,
    HIGH,
    INFO,
    WARNING,
)
from lambdas.common.currency import format_amount
from lambdas.common.locks import KeyedLocks
from lambdas.common.models import CANCELLED, PAID, PENDING, RequestContext, Transaction
from lambdas.common.results import Err, ErrorKind, Ok
from lambdas.common.security import (
    IntegrityFailureError,
    decrypt,
    encrypt,
    mask_mobile_number,
    validate_phone_number,
    validate_transaction_ref,
)
from lambdas.payment.persistence import PaymentCommit
from lambdas.payment.ports import SystemClock
from lambdas.pricing.eligibility import (
    INVALID_SELECTION_MSG,
    BooleanIntent,
    compute_expected_total,
    parse_boolean_intent,
)
from lambdas.score.risk import BLOCK, CHALLENGE, assess

log = logging.getLogger(__name__)

RECEIVED = "RECEIVED"
VALIDATED = "VALIDATED"
PRICED = "PRICED"
RISK_ASSESSED = "RISK_ASSESSED"
COMMITTED = "COMMITTED"
CHALLENGED = "CHALLENGED"
BLOCKED = "BLOCKED"
REJECTED = "REJECTED"

COMPLETED = "completed"

# Rejections that look like tampering or probing get a louder audit entry
_WARNING_KINDS = {
    ErrorKind.ACCESS_DENIED,
    ErrorKind.DUPLICATE_TRANSACTION,
    ErrorKind.PAYMENT_AMOUNT_MISMATCH,
    ErrorKind.INVALID_ELIGIBILITY,
    ErrorKind.INVALID_TRANSACTION_REF,
}

# Only failed payments count toward the failed-attempts fraud signal. Replays,
# unknown or settled bookings and blocks themselves do not.
_COUNTED_FAILURES = {
    ErrorKind.ACCESS_DENIED,
    ErrorKind.INVALID_AMOUNT,
    ErrorKind.PAYMENT_AMOUNT_MISMATCH,
    ErrorKind.INVALID_ELIGIBILITY,
    ErrorKind.INVALID_TRANSACTION_REF,
    ErrorKind.INVALID_PAYER_MOBILE,
    ErrorKind.INSUFFICIENT_BALANCE,
}


@dataclass
class PaymentRequest:
    transaction_ref: object
    amount: object
    rapid_assistance_requested: object = None
    payer_mobile: Optional[str] = None

    @classmethod
    def from_body(cls, body: dict) -> "PaymentRequest":
        return cls(
            transaction_ref=body.get("transaction_ref"),
            amount=body.get("amount"),
            rapid_assistance_requested=body.get("rapid_assistance_requested"),
            payer_mobile=body.get("payer_mobile"),
        )


@dataclass
class AuthorizationResult:
    success: bool
    state: str
    transaction: Optional[Transaction] = None
    requires_additional_verification: bool = False
    fraud_risk_level: Optional[str] = None
    error: Optional[Err] = None

    @property
    def status_code(self) -> int:
        return self.error.kind.status_code if self.error else 200

    def to_dict(self) -> dict:
        data = {"success": self.success}
        if self.transaction is not None:
            data["transaction"] = self.transaction.to_public()
        if self.requires_additional_verification:
            data["requires_additional_verification"] = True
        if self.fraud_risk_level:
            data["fraud_risk_level"] = self.fraud_risk_level
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


def parse_payment_amount(value) -> Optional[Decimal]:
    """Positive finite number as Decimal, else None. Strings and bools are not amounts."""
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        value = Decimal(str(value))
    amount = Decimal(value)
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


def reveal_payer_mobile(item: dict):
    """Ok(masked mobile or None) for a stored transaction, Err(INTEGRITY_FAILURE) if it was tampered with."""
    envelope = item.get("payer_mobile_enc")
    if not envelope:
        return Ok(None)
    try:
        return Ok(mask_mobile_number(decrypt(envelope)))
    except IntegrityFailureError as e:
        log.error("❌ Payer mobile failed integrity check for %s: %s", item.get("transaction_ref"), e)
        return Err(ErrorKind.INTEGRITY_FAILURE, "Stored payment details failed integrity verification")


class PaymentAuthorizer:

    def __init__(self, persistence, signals, audit, escalator=None, clock=None, locks=None):
        self.persistence = persistence
        self.signals = signals
        self.audit = audit
        self.escalator = escalator
        self.clock = clock or SystemClock()
        self.locks = locks or KeyedLocks()

    def authorize_payment(self, booking_id, request: PaymentRequest, acting_user_id: str,
                          context: Optional[RequestContext] = None) -> AuthorizationResult:
        context = context or RequestContext()
        # one attempt per user at a time inside this process; DynamoDB conditions cover the rest
        with self.locks.hold(acting_user_id):
            return self._authorize(str(booking_id), request, acting_user_id, context)

    def _authorize(self, booking_id, request, user_id, context) -> AuthorizationResult:
        now = self.clock.now()
        attempt = _Attempt(booking_id, user_id, request, context, now)

        # ---- RECEIVED -> VALIDATED ----
        booking = self.persistence.get_booking(booking_id)
        if booking is None:
            return self._reject(attempt, Err(ErrorKind.NOT_FOUND, "Booking not found"))
        if booking.user_id != user_id:
            return self._reject(attempt, Err(ErrorKind.ACCESS_DENIED, "You can only pay for your own bookings"))
        if not validate_transaction_ref(request.transaction_ref):
            return self._reject(attempt, Err(ErrorKind.INVALID_TRANSACTION_REF, "Invalid transaction reference"))
        if self.persistence.transaction_exists(user_id, request.transaction_ref):
            return self._reject(attempt, Err(ErrorKind.DUPLICATE_TRANSACTION, "Duplicate transaction ID"))
        if booking.payment_status != PENDING:
            if booking.payment_status == CANCELLED:
                msg = "Cannot pay for a cancelled booking"
            elif booking.payment_status == PAID:
                msg = "Booking has already been paid"
            else:
                msg = f"Booking payment is {booking.payment_status}"
            return self._reject(attempt, Err(ErrorKind.ALREADY_PROCESSED, msg))

        amount = parse_payment_amount(request.amount)
        if amount is None:
            return self._reject(attempt, Err(ErrorKind.INVALID_AMOUNT, "Payment amount must be a positive number"))
        attempt.amount = amount
        if request.payer_mobile is not None and not validate_phone_number(request.payer_mobile):
            return self._reject(attempt, Err(ErrorKind.INVALID_PAYER_MOBILE, "Invalid bKash mobile number"))

        intent = parse_boolean_intent(request.rapid_assistance_requested)
        if intent is BooleanIntent.INVALID:
            return self._reject(attempt, Err(ErrorKind.INVALID_ELIGIBILITY, INVALID_SELECTION_MSG))
        attempt.state = VALIDATED

        # ---- VALIDATED -> PRICED ----
        pricing = self.persistence.get_hospital_pricing(booking.hospital_id, booking.resource_type)
        if pricing is None:
            return self._reject(attempt, Err(ErrorKind.NOT_FOUND, "No pricing configured for this resource"))
        quoted = compute_expected_total(booking, pricing, intent is BooleanIntent.YES)
        if not quoted.is_ok:
            return self._reject(attempt, quoted)
        quote = quoted.value
        attempt.expected = quote.total_expected
        if amount != quote.total_expected:
            return self._reject(attempt, Err(
                ErrorKind.PAYMENT_AMOUNT_MISMATCH,
                f"Payment amount {format_amount(amount)} does not match the expected total "
                f"{format_amount(quote.total_expected)}",
            ))
        attempt.state = PRICED

        # ---- PRICED -> RISK_ASSESSED ----
        assessment = assess(self.signals.gather(user_id, amount, context, now))
        attempt.assessment = assessment
        attempt.state = RISK_ASSESSED
        action = assessment.recommendation.action

        if action == BLOCK:
            return self._block(attempt)

        balance = self.persistence.get_user_balance(user_id)
        if balance < amount:
            return self._reject(attempt, Err(ErrorKind.INSUFFICIENT_BALANCE, "Insufficient balance"))

        # ---- commit ----
        challenged = action == CHALLENGE
        txn = Transaction(
            id=str(uuid.uuid4()),
            booking_id=booking.id,
            user_id=user_id,
            transaction_ref=request.transaction_ref,
            amount=amount,
            previous_balance=balance,
            new_balance=balance - amount,
            status=COMPLETED,
            created_at=now.isoformat(),
            hospital_id=booking.hospital_id,
            risk_score=assessment.risk_score,
            risk_level=assessment.risk_level,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            payer_mobile_enc=encrypt(request.payer_mobile) if request.payer_mobile else None,
            extra={
                "base_price": quote.base_price,
                "service_charge": quote.service_charge_amount,
                "rapid_assistance_charge": quote.add_on_charge,
                "requires_additional_verification": challenged,
            },
        )
        committed = self.persistence.commit_payment(
            PaymentCommit(transaction=txn, quote=quote, apply_add_on=quote.add_on_charge > 0)
        )
        if not committed.is_ok:
            return self._reject(attempt, committed)

        attempt.state = CHALLENGED if challenged else COMMITTED
        self._emit(attempt.event(
            "payment_challenged" if challenged else "payment_completed",
            WARNING if challenged else INFO,
            transaction_id=txn.id,
            new_balance=txn.new_balance,
            add_on_charge=quote.add_on_charge,
        ))
        return AuthorizationResult(
            success=True,
            state=attempt.state,
            transaction=txn,
            requires_additional_verification=challenged,
            fraud_risk_level=assessment.risk_level,
        )

    # ---------- terminal helpers ----------
    def _reject(self, attempt, error: Err) -> AuthorizationResult:
        log.info("⏭️ Payment rejected at %s: booking=%s user=%s kind=%s",
                 attempt.state, attempt.booking_id, attempt.user_id, error.kind.code)
        if error.kind in _COUNTED_FAILURES:
            self.persistence.record_failed_attempt(attempt.user_id, attempt.booking_id, error.kind.code, attempt.now)
        severity = WARNING if error.kind in _WARNING_KINDS else INFO
        self._emit(attempt.event("payment_rejected", severity, reason=error.kind.code, message=error.message))
        return AuthorizationResult(
            success=False,
            state=REJECTED,
            fraud_risk_level=attempt.assessment.risk_level if attempt.assessment else None,
            error=error,
        )

    def _block(self, attempt) -> AuthorizationResult:
        assessment = attempt.assessment
        rec = assessment.recommendation
        log.warning("❌ Payment blocked: booking=%s user=%s score=%d flags=%s",
                    attempt.booking_id, attempt.user_id, assessment.risk_score, sorted(assessment.fraud_flags))
        event = attempt.event(
            "payment_blocked",
            CRITICAL if assessment.risk_level == CRITICAL else HIGH,
            reason=ErrorKind.FRAUD_BLOCKED.code,
        )
        self._emit(event)
        if rec.requires_manual_review:
            self._request_review(event)
        return AuthorizationResult(
            success=False,
            state=BLOCKED,
            fraud_risk_level=assessment.risk_level,
            error=Err(ErrorKind.FRAUD_BLOCKED, rec.message),
        )

    def _emit(self, event: AuditEvent) -> None:
        try:
            self.audit.record(event)
        except Exception as e:
            if event.severity not in ESCALATED_SEVERITIES:
                log.warning("Audit write failed for %s: %s", event.event_type, e)
                return
            log.error("❌ Audit write failed for %s event %s: %s", event.severity, event.event_type, e)
            if self.escalator is None:
                log.critical("Unrecorded %s audit event: %s", event.severity, event.summary())
                return
            try:
                self.escalator.escalate(event, e)
            except Exception as esc_err:
                log.critical("Escalation failed (%s); unrecorded %s audit event: %s",
                             esc_err, event.severity, event.summary())

    def _request_review(self, event: AuditEvent) -> None:
        if self.escalator is None:
            log.critical("Manual review required but no escalator configured: %s", event.summary())
            return
        try:
            self.escalator.manual_review(event)
        except Exception as e:
            log.critical("Manual review request failed (%s): %s", e, event.summary())


class _Attempt:
    """What is known about one attempt so far; feeds logs and audit events."""

    def __init__(self, booking_id, user_id, request, context, now):
        self.booking_id = booking_id
        self.user_id = user_id
        self.request = request
        self.context = context
        self.now = now
        self.state = RECEIVED
        self.amount = None
        self.expected = None
        self.assessment = None

    def event(self, event_type: str, severity: str, **extra) -> AuditEvent:
        payload = {
            "booking_id": self.booking_id,
            "transaction_ref": str(self.request.transaction_ref)[:64],
            "state": self.state,
            "amount": self.amount,
            "expected_total": self.expected,
        }
        if self.request.payer_mobile:
            payload["payer_mobile"] = mask_mobile_number(str(self.request.payer_mobile))
        if self.assessment is not None:
            payload["fraud"] = self.assessment.to_dict()
        payload.update(extra)
        return AuditEvent(
            event_type=event_type,
            user_id=self.user_id,
            severity=severity,
            created_at=self.now.isoformat(),
            ip_address=self.context.ip_address,
            user_agent=self.context.user_agent,
            session_id=self.context.session_id,
            payload=payload,
        )
