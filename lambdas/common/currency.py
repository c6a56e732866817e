"""
Taka amount helpers.

All arithmetic is done in Decimal. Floats are converted through str() so that
values like 1000.555 keep the digits the caller wrote instead of their binary
approximation.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CURRENCY_SYMBOL = "৳"
TWO_PLACES = Decimal("0.01")

_SEPARATORS = re.compile(r"[,\s_]")
_NUMERIC = re.compile(r"^\d+(\.\d+)?$|^\.\d+$")


class CurrencyParseError(ValueError):
    pass


def to_decimal(amount) -> Decimal:
    if amount is None:
        return Decimal("0")
    if isinstance(amount, bool):
        raise TypeError("booleans are not amounts")
    if isinstance(amount, Decimal):
        return amount
    if isinstance(amount, int):
        return Decimal(amount)
    if isinstance(amount, float):
        return Decimal(str(amount))
    if isinstance(amount, str):
        return parse_amount(amount)
    raise TypeError(f"unsupported amount type: {type(amount).__name__}")


def round_amount(amount) -> Decimal:
    """Round to paisa, half-up (0.005 -> 0.01)."""
    return to_decimal(amount).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _group_lakh(digits: str) -> str:
    # 1234567 -> 12,34,567
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_amount(amount, show_symbol: bool = True) -> str:
    if not to_decimal(amount).is_finite():
        raise ValueError("cannot format a non-finite amount")
    value = round_amount(amount)

    sign = "-" if value < 0 else ""
    whole, frac = f"{abs(value):.2f}".split(".")
    symbol = CURRENCY_SYMBOL if show_symbol else ""
    return f"{sign}{symbol}{_group_lakh(whole)}.{frac}"


def parse_amount(text) -> Decimal:
    if isinstance(text, (int, Decimal)) and not isinstance(text, bool):
        return Decimal(text)
    if not isinstance(text, str):
        raise CurrencyParseError(f"cannot parse {type(text).__name__} as an amount")

    cleaned = text.strip()
    negative = cleaned.startswith("-")
    if negative:
        cleaned = cleaned[1:].strip()
    cleaned = cleaned.replace(CURRENCY_SYMBOL, "", 1).strip()
    if not negative and cleaned.startswith("-"):
        negative = True
        cleaned = cleaned[1:]
    cleaned = _SEPARATORS.sub("", cleaned)

    if not _NUMERIC.match(cleaned):
        raise CurrencyParseError(f"not a currency amount: {text!r}")
    try:
        value = Decimal(cleaned)
    except InvalidOperation as exc:
        raise CurrencyParseError(f"not a currency amount: {text!r}") from exc
    return -value if negative else value


def to_paisa(amount) -> int:
    return int(round_amount(amount) * 100)


def from_paisa(paisa: int) -> Decimal:
    return (Decimal(int(paisa)) / 100).quantize(TWO_PLACES)


def calculate_percentage(amount, percent) -> Decimal:
    return round_amount(to_decimal(amount) * to_decimal(percent) / 100)
