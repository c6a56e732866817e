import sys
from decimal import Decimal
import pytest

from lambdas.common.models import Booking
from lambdas.common.results import ErrorKind
from lambdas.pricing.eligibility import (
    AGE_REQUIRED_MSG,
    INELIGIBLE_AGE_MSG,
    INVALID_AGE_MSG,
    INVALID_SELECTION_MSG,
    BooleanIntent,
    HospitalPricing,
    calculate_add_on_charge,
    calculate_base_price,
    compute_expected_total,
    parse_boolean_intent,
    validate_eligibility,
)


@pytest.mark.parametrize("value", [True, 1, 1.0, "1", "true", "TRUE", " yes ", "on", Decimal("1")])
def test_intent_yes(value):
    assert parse_boolean_intent(value) is BooleanIntent.YES

@pytest.mark.parametrize("value", [False, 0, 0.0, None, float("nan"), "", "0", "false", "No", "off"])
def test_intent_no(value):
    assert parse_boolean_intent(value) is BooleanIntent.NO

@pytest.mark.parametrize("value", [2, -1, 0.5, "maybe", "y", {}, {"a": 1}, [], [1], object()])
def test_intent_invalid(value):
    assert parse_boolean_intent(value) is BooleanIntent.INVALID

@pytest.mark.parametrize("age", [60, 60.0, 60.000, 61, 95, 150, Decimal("60")])
def test_eligible_ages(age):
    assert validate_eligibility(age, True).is_valid

@pytest.mark.parametrize("age", [59, 59.999, 0, Decimal("59.99"), 60 - sys.float_info.epsilon * 64])
def test_ineligible_ages(age):
    result = validate_eligibility(age, True)
    assert not result.is_valid
    assert result.errors == [INELIGIBLE_AGE_MSG]

@pytest.mark.parametrize("age", [-1, 151, 1e9, float("nan"), float("inf"), float("-inf"), "65", True, [65]])
def test_invalid_ages_are_distinct_from_ineligible(age):
    result = validate_eligibility(age, True)
    assert not result.is_valid
    assert result.errors == [INVALID_AGE_MSG]

def test_missing_age():
    assert validate_eligibility(None, "yes").errors == [AGE_REQUIRED_MSG]

def test_no_request_is_valid_for_any_age():
    for age in (None, 5, -3, "abc"):
        assert validate_eligibility(age, False).is_valid

def test_invalid_selection():
    result = validate_eligibility(70, {"rapid": True})
    assert not result.is_valid
    assert result.errors == [INVALID_SELECTION_MSG]

def test_add_on_charge_is_stateless():
    assert calculate_add_on_charge(True) == Decimal("200")
    assert calculate_add_on_charge(True) == Decimal("200")
    assert calculate_add_on_charge(False) == Decimal("0")
    assert calculate_add_on_charge("maybe") == Decimal("0")


def _pricing(**kw):
    base = dict(hospital_id="h1", resource_type="icu", base_rate=Decimal("800"))
    base.update(kw)
    return HospitalPricing(**base)

def _booking(**kw):
    base = dict(id="b1", user_id="user_001", hospital_id="h1", resource_type="icu",
                patient_age=67, estimated_duration_hours=Decimal("24"))
    base.update(kw)
    return Booking(**base)

def test_daily_pricing_rounds_up_to_whole_days():
    p = _pricing()
    assert calculate_base_price(24, p) == Decimal("800.00")
    assert calculate_base_price(25, p) == Decimal("1600.00")
    assert calculate_base_price(1, p) == Decimal("800.00")
    assert calculate_base_price(0, p) == Decimal("800.00")

def test_flat_pricing_with_hourly_overrun():
    p = _pricing(pricing_model="flat", base_rate=Decimal("12000"), hourly_rate=Decimal("500"))
    assert calculate_base_price(24, p) == Decimal("12000.00")
    assert calculate_base_price(30, p) == Decimal("15000.00")

def test_min_and_max_charge_clamp():
    assert calculate_base_price(24, _pricing(minimum_charge=Decimal("1000"))) == Decimal("1000.00")
    assert calculate_base_price(240, _pricing(maximum_charge=Decimal("5000"))) == Decimal("5000.00")

def test_expected_total_without_add_on():
    quote = compute_expected_total(_booking(), _pricing()).value
    assert quote.base_price == Decimal("800")
    assert quote.service_charge_amount == Decimal("200")
    assert quote.add_on_charge == 0
    assert quote.total_expected == Decimal("1000")
    assert quote.hospital_share + quote.platform_share == quote.total_expected

def test_expected_total_with_requested_add_on():
    quote = compute_expected_total(_booking(), _pricing(), add_on_requested=True).value
    assert quote.total_expected == Decimal("1200")
    assert quote.platform_share == Decimal("400")

def test_stored_add_on_is_charged_once():
    booking = _booking(rapid_assistance_enabled=True)
    assert compute_expected_total(booking, _pricing()).value.total_expected == Decimal("1200")
    assert compute_expected_total(booking, _pricing(), "yes").value.total_expected == Decimal("1200")

def test_add_on_for_young_patient_is_ineligible():
    result = compute_expected_total(_booking(patient_age=45), _pricing(), True)
    assert not result.is_ok
    assert result.kind is ErrorKind.INVALID_ELIGIBILITY

def test_stored_add_on_with_bad_age_is_rejected():
    result = compute_expected_total(_booking(patient_age=None, rapid_assistance_enabled=True), _pricing())
    assert result.kind is ErrorKind.INVALID_ELIGIBILITY
    assert result.message == AGE_REQUIRED_MSG

def test_service_charge_rate_from_pricing():
    quote = compute_expected_total(_booking(), _pricing(service_charge_rate=Decimal("0.1"))).value
    assert quote.total_expected == Decimal("880")
