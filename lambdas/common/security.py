import os
import re
import json
import hmac
import math
import time
import hashlib
import logging
import secrets
import itertools
from datetime import date, datetime
from decimal import Decimal

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

log = logging.getLogger(__name__)

# ----------------- Config -----------------
ENCRYPTION_KEY = os.environ.get("ENCRYPTION_KEY")  # 64 hex chars (AES-256)

IV_LENGTH = 12
TAG_LENGTH = 16

MOBILE_MASK = "*****"
SHORT_MASK = "****"
MIN_REVEALABLE_LENGTH = 7  # 3 shown + at least one hidden + 3 shown

_BD_MOBILE = re.compile(r"^(?:\+880|00880|880|0)1[3-9]\d{8}$")
_PIN = re.compile(r"^\d{4,6}$")
_TXN_REF = re.compile(r"^[A-Za-z0-9_-]{4,256}$")

SENSITIVE_KEYS = {"pin", "mobile_number", "payer_mobile", "phone_number", "account_number"}


class IntegrityFailureError(Exception):
    """Ciphertext or tag did not authenticate."""


# ---------- Format validation ----------
def validate_phone_number(number) -> bool:
    if not isinstance(number, str):
        return False
    return bool(_BD_MOBILE.match(number))


validate_bkash_mobile_number = validate_phone_number


def validate_pin_format(pin) -> bool:
    if not isinstance(pin, str):
        return False
    return bool(_PIN.match(pin))


def validate_transaction_ref(ref) -> bool:
    if not isinstance(ref, str):
        return False
    return bool(_TXN_REF.match(ref))


# ---------- Masking ----------
def mask_mobile_number(number) -> str:
    if isinstance(number, int) and not isinstance(number, bool):
        number = str(number)
    if not isinstance(number, str) or len(number) < MIN_REVEALABLE_LENGTH:
        return SHORT_MASK
    return number[:3] + MOBILE_MASK + number[-3:]


def mask_pin(pin) -> str:
    return "*" * len(pin) if pin else SHORT_MASK


def sanitize_for_log(payload):
    """Copy of payload with PINs and phone/account numbers masked."""
    if isinstance(payload, dict):
        clean = {}
        for k, v in payload.items():
            if k in SENSITIVE_KEYS and isinstance(v, str):
                clean[k] = mask_pin(v) if k == "pin" else mask_mobile_number(v)
            else:
                clean[k] = sanitize_for_log(v)
        return clean
    if isinstance(payload, (list, tuple)):
        return [sanitize_for_log(v) for v in payload]
    return payload


# ---------- Audit hashing ----------
def _format_number(value) -> str:
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError("non-finite numbers cannot be canonicalized")
        value = Decimal(str(value))
    elif isinstance(value, int):
        return str(value)
    if not value.is_finite():
        raise ValueError("non-finite numbers cannot be canonicalized")
    if value == value.to_integral_value():
        return str(int(value))
    return format(value.normalize(), "f")


def canonicalize(data) -> str:
    """
    Stable text form of a JSON-like value: sorted keys, no whitespace,
    numbers rendered from their exact decimal value so 1000, 1000.0 and
    Decimal("1000.00") are the same thing.
    """
    if data is None:
        return "null"
    if isinstance(data, bool):
        return "true" if data else "false"
    if isinstance(data, (int, float, Decimal)):
        return _format_number(data)
    if isinstance(data, str):
        return json.dumps(data, ensure_ascii=False)
    if isinstance(data, (datetime, date)):
        return json.dumps(data.isoformat())
    if isinstance(data, dict):
        items = sorted((str(k), v) for k, v in data.items())
        return "{" + ",".join(f"{json.dumps(k, ensure_ascii=False)}:{canonicalize(v)}" for k, v in items) + "}"
    if isinstance(data, (set, frozenset)):
        return "[" + ",".join(sorted(canonicalize(v) for v in data)) + "]"
    if isinstance(data, (list, tuple)):
        return "[" + ",".join(canonicalize(v) for v in data) + "]"
    raise TypeError(f"cannot canonicalize {type(data).__name__}")


def generate_audit_hash(data) -> str:
    return hashlib.sha256(canonicalize(data).encode("utf-8")).hexdigest()


def verify_audit_hash(data, stored_hash: str) -> bool:
    return hmac.compare_digest(generate_audit_hash(data), stored_hash or "")


# ---------- Transaction references ----------
_ref_counter = itertools.count()


def generate_secure_transaction_ref() -> str:
    millis = time.time_ns() // 1_000_000
    seq = next(_ref_counter) % 0x10000
    return f"BKS{millis}{seq:04X}{secrets.token_hex(8)}".upper()


# ---------- Field encryption ----------
class FieldCipher:
    """AES-256-GCM over JSON-serialized values."""

    def __init__(self, key: bytes):
        if len(key) != 32:
            raise ValueError("Encryption key must be 32 bytes")
        self._aes = AESGCM(key)

    @classmethod
    def from_hex(cls, hex_key: str) -> "FieldCipher":
        return cls(bytes.fromhex(hex_key))

    def encrypt(self, data) -> dict:
        iv = secrets.token_bytes(IV_LENGTH)
        plaintext = json.dumps(data, default=str).encode("utf-8")
        sealed = self._aes.encrypt(iv, plaintext, None)
        return {
            "ciphertext": sealed[:-TAG_LENGTH].hex(),
            "iv": iv.hex(),
            "tag": sealed[-TAG_LENGTH:].hex(),
        }

    def decrypt(self, envelope: dict):
        try:
            iv = bytes.fromhex(envelope["iv"])
            sealed = bytes.fromhex(envelope["ciphertext"]) + bytes.fromhex(envelope["tag"])
            plaintext = self._aes.decrypt(iv, sealed, None)
        except InvalidTag as exc:
            raise IntegrityFailureError("Encrypted payload failed authentication") from exc
        except (KeyError, TypeError, ValueError) as exc:
            raise IntegrityFailureError(f"Malformed encrypted payload: {exc}") from exc
        return json.loads(plaintext.decode("utf-8"))


def _default_cipher() -> FieldCipher:
    if ENCRYPTION_KEY:
        return FieldCipher.from_hex(ENCRYPTION_KEY)
    log.warning("ENCRYPTION_KEY not set. Using a per-process key; encrypted fields will not survive a restart.")
    return FieldCipher(AESGCM.generate_key(bit_length=256))


_CIPHER = _default_cipher()


def encrypt(data) -> dict:
    return _CIPHER.encrypt(data)


def decrypt(envelope: dict):
    return _CIPHER.decrypt(envelope)
