"""
Rapid Assistance eligibility and the authoritative price of a booking.

Nothing here looks at client-submitted charges. The only client input that
reaches pricing is the yes/no intent to add Rapid Assistance, and that intent
is checked against the patient age stored on the booking.
"""
import os
import math
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from lambdas.common.currency import round_amount
from lambdas.common.models import Booking
from lambdas.common.results import Err, ErrorKind, Ok

# ----------------- Config -----------------
RAPID_ASSISTANCE_CHARGE = Decimal(os.environ.get("RAPID_ASSISTANCE_CHARGE", "200"))
RAPID_ASSISTANCE_MIN_AGE = int(os.environ.get("RAPID_ASSISTANCE_MIN_AGE", "60"))
MAX_PLAUSIBLE_AGE = int(os.environ.get("MAX_PLAUSIBLE_AGE", "150"))
DEFAULT_SERVICE_CHARGE_RATE = Decimal(os.environ.get("DEFAULT_SERVICE_CHARGE_RATE", "0.25"))

AGE_REQUIRED_MSG = "Patient age is required to determine Rapid Assistance eligibility"
INVALID_AGE_MSG = "Invalid patient age detected"
INVALID_SELECTION_MSG = "Invalid Rapid Assistance selection detected"
INELIGIBLE_AGE_MSG = (
    "Invalid Rapid Assistance selection detected. Please ensure you meet the age requirements. "
    f"Note: Rapid Assistance is exclusively available for patients aged {RAPID_ASSISTANCE_MIN_AGE} "
    "and above to ensure appropriate care for senior citizens."
)

_YES_WORDS = {"1", "true", "yes", "on"}
_NO_WORDS = {"", "0", "false", "no", "off"}


class BooleanIntent(Enum):
    YES = "yes"
    NO = "no"
    INVALID = "invalid"


def parse_boolean_intent(value) -> BooleanIntent:
    """
    Total mapping of a request flag to an intent.

    YES:  True, 1, 1.0, "1", "true", "yes", "on"
    NO:   False, 0, None, NaN, "", "0", "false", "no", "off"
    INVALID: anything else, including other numbers, dicts and lists.
    Strings are compared case-insensitively after stripping whitespace.
    """
    if value is None:
        return BooleanIntent.NO
    if isinstance(value, bool):
        return BooleanIntent.YES if value else BooleanIntent.NO
    if isinstance(value, (int, float, Decimal)):
        if isinstance(value, float) and math.isnan(value):
            return BooleanIntent.NO
        if isinstance(value, Decimal) and value.is_nan():
            return BooleanIntent.NO
        if value == 1:
            return BooleanIntent.YES
        if value == 0:
            return BooleanIntent.NO
        return BooleanIntent.INVALID
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _YES_WORDS:
            return BooleanIntent.YES
        if word in _NO_WORDS:
            return BooleanIntent.NO
    return BooleanIntent.INVALID


@dataclass
class EligibilityResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


def _is_real_number(age) -> bool:
    if isinstance(age, bool) or not isinstance(age, (int, float, Decimal)):
        return False
    if isinstance(age, Decimal):
        return age.is_finite()
    return math.isfinite(age)


def validate_eligibility(age, requested) -> EligibilityResult:
    intent = parse_boolean_intent(requested)
    if intent is BooleanIntent.NO:
        return EligibilityResult(True)
    if intent is BooleanIntent.INVALID:
        return EligibilityResult(False, [INVALID_SELECTION_MSG])

    if age is None:
        return EligibilityResult(False, [AGE_REQUIRED_MSG])
    if not _is_real_number(age) or age < 0 or age > MAX_PLAUSIBLE_AGE:
        return EligibilityResult(False, [INVALID_AGE_MSG])
    # exact comparison, no epsilon; ints, floats and Decimals compare exactly
    if age < RAPID_ASSISTANCE_MIN_AGE:
        return EligibilityResult(False, [INELIGIBLE_AGE_MSG])
    return EligibilityResult(True)


def calculate_add_on_charge(requested) -> Decimal:
    if parse_boolean_intent(requested) is BooleanIntent.YES:
        return RAPID_ASSISTANCE_CHARGE
    return Decimal("0")


# ---------- Pricing ----------
@dataclass
class HospitalPricing:
    hospital_id: str
    resource_type: str
    base_rate: Decimal
    pricing_model: str = "daily"        # "daily" or "flat"
    hourly_rate: Optional[Decimal] = None
    minimum_charge: Optional[Decimal] = None
    maximum_charge: Optional[Decimal] = None
    service_charge_rate: Decimal = DEFAULT_SERVICE_CHARGE_RATE

    @classmethod
    def from_item(cls, item: dict) -> "HospitalPricing":
        def opt(key):
            v = item.get(key)
            return None if v is None else Decimal(str(v))

        rate = opt("service_charge_rate")
        return cls(
            hospital_id=item["hospital_id"],
            resource_type=item["resource_type"],
            base_rate=Decimal(str(item["base_rate"])),
            pricing_model=item.get("pricing_model", "daily"),
            hourly_rate=opt("hourly_rate"),
            minimum_charge=opt("minimum_charge"),
            maximum_charge=opt("maximum_charge"),
            service_charge_rate=DEFAULT_SERVICE_CHARGE_RATE if rate is None else rate,
        )


@dataclass(frozen=True)
class PricingQuote:
    base_price: Decimal
    service_charge_amount: Decimal
    add_on_charge: Decimal
    total_expected: Decimal

    @property
    def hospital_share(self) -> Decimal:
        return self.base_price

    @property
    def platform_share(self) -> Decimal:
        return self.service_charge_amount + self.add_on_charge

    def to_dict(self) -> dict:
        return {
            "base_price": str(self.base_price),
            "service_charge_amount": str(self.service_charge_amount),
            "add_on_charge": str(self.add_on_charge),
            "total_expected": str(self.total_expected),
        }


def calculate_base_price(hours, pricing: HospitalPricing) -> Decimal:
    hours = Decimal(str(hours)) if hours is not None else Decimal("24")
    if pricing.pricing_model == "flat":
        amount = pricing.base_rate
        if pricing.hourly_rate and hours > 24:
            amount += (hours - 24) * pricing.hourly_rate
    else:
        days = max(1, math.ceil(hours / 24))
        amount = pricing.base_rate * days

    if pricing.minimum_charge and amount < pricing.minimum_charge:
        amount = pricing.minimum_charge
    if pricing.maximum_charge and amount > pricing.maximum_charge:
        amount = pricing.maximum_charge
    return round_amount(amount)


def compute_expected_total(booking: Booking, pricing: HospitalPricing, add_on_requested=False):
    """
    Ok(PricingQuote) or Err(INVALID_ELIGIBILITY).

    The add-on is part of the price when the booking already carries Rapid
    Assistance or the caller asks for it, and only once either way. Both
    paths validate the stored patient age.
    """
    wants_add_on = booking.rapid_assistance_enabled or (
        parse_boolean_intent(add_on_requested) is BooleanIntent.YES
    )

    add_on = Decimal("0")
    if wants_add_on:
        eligibility = validate_eligibility(booking.patient_age, True)
        if not eligibility.is_valid:
            return Err(ErrorKind.INVALID_ELIGIBILITY, eligibility.errors[0])
        add_on = calculate_add_on_charge(True)

    base = calculate_base_price(booking.estimated_duration_hours, pricing)
    service = round_amount(base * pricing.service_charge_rate)
    add_on = round_amount(add_on)
    return Ok(PricingQuote(
        base_price=base,
        service_charge_amount=service,
        add_on_charge=add_on,
        total_expected=base + service + add_on,
    ))
