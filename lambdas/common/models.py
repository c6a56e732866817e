from dataclasses import dataclass, field, asdict
from decimal import Decimal
from typing import Optional

PENDING = "pending"
PAID = "paid"
CANCELLED = "cancelled"


def _dec(value, default="0") -> Decimal:
    if value is None:
        return Decimal(default)
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass
class Booking:
    id: str
    user_id: str
    hospital_id: str
    resource_type: str
    patient_age: Optional[object] = None
    estimated_duration_hours: Decimal = Decimal("24")
    payment_status: str = PENDING
    rapid_assistance_enabled: bool = False
    rapid_assistance_charge: Decimal = Decimal("0")

    @classmethod
    def from_item(cls, item: dict) -> "Booking":
        return cls(
            id=item["booking_id"],
            user_id=item["user_id"],
            hospital_id=item["hospital_id"],
            resource_type=item["resource_type"],
            patient_age=item.get("patient_age"),
            estimated_duration_hours=_dec(item.get("estimated_duration_hours"), "24"),
            payment_status=item.get("payment_status", PENDING),
            rapid_assistance_enabled=bool(item.get("rapid_assistance_enabled", False)),
            rapid_assistance_charge=_dec(item.get("rapid_assistance_charge")),
        )


@dataclass(frozen=True)
class RequestContext:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None


@dataclass
class Transaction:
    id: str
    booking_id: str
    user_id: str
    transaction_ref: str
    amount: Decimal
    previous_balance: Decimal
    new_balance: Decimal
    status: str
    created_at: str
    hospital_id: str = ""
    risk_score: int = 0
    risk_level: str = "MINIMAL"
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    payer_mobile_enc: Optional[dict] = None
    extra: dict = field(default_factory=dict)

    def to_item(self) -> dict:
        item = {
            "user_id": self.user_id,
            "transaction_ref": self.transaction_ref,
            "transaction_id": self.id,
            "booking_id": self.booking_id,
            "hospital_id": self.hospital_id,
            "amount": self.amount,
            "previous_balance": self.previous_balance,
            "new_balance": self.new_balance,
            "status": self.status,
            "created_at": self.created_at,
            "risk_score": self.risk_score,
            "risk_level": self.risk_level,
        }
        for key in ("ip_address", "user_agent", "payer_mobile_enc"):
            value = getattr(self, key)
            if value:
                item[key] = value
        item.update(self.extra)
        return item

    def to_public(self) -> dict:
        """Response shape: no encrypted blobs, amounts as strings."""
        data = asdict(self)
        data.pop("payer_mobile_enc", None)
        data.pop("extra", None)
        for key in ("amount", "previous_balance", "new_balance"):
            data[key] = str(data[key])
        return data
