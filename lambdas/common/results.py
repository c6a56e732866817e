from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(Enum):
    """Expected failure kinds and the HTTP status each maps to."""

    NOT_FOUND = ("NotFound", 404)
    ACCESS_DENIED = ("AccessDenied", 403)
    ALREADY_PROCESSED = ("AlreadyProcessed", 400)
    INVALID_AMOUNT = ("InvalidAmount", 400)
    PAYMENT_AMOUNT_MISMATCH = ("PaymentAmountMismatch", 400)
    INVALID_ELIGIBILITY = ("InvalidEligibility", 400)
    INVALID_TRANSACTION_REF = ("InvalidTransactionRef", 400)
    DUPLICATE_TRANSACTION = ("DuplicateTransaction", 400)
    INSUFFICIENT_BALANCE = ("InsufficientBalance", 400)
    INVALID_PAYER_MOBILE = ("InvalidPayerMobile", 400)
    INTEGRITY_FAILURE = ("IntegrityFailure", 422)
    FRAUD_BLOCKED = ("FraudBlocked", 403)

    def __init__(self, code, status_code):
        self.code = code
        self.status_code = status_code


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str

    @property
    def is_ok(self) -> bool:
        return False

    def to_dict(self) -> dict:
        return {
            "code": self.kind.code,
            "message": self.message,
            "status": self.kind.status_code,
        }


Result = Union[Ok[Any], Err]
