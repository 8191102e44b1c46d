"""
Tipos do ledger PIX: adquirentes, status e helpers de linha.
A row of pix_transactions is a plain dict, as returned by supabase-py.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from zoneinfo import ZoneInfo


class Acquirer(str, Enum):
    SPEDPAY = "spedpay"
    INTER = "inter"
    ATIVUS = "ativus"

    @classmethod
    def parse(cls, value) -> "Acquirer | None":
        if isinstance(value, cls):
            return value
        if not value:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class PixStatus(str, Enum):
    GENERATED = "generated"
    PAID = "paid"
    EXPIRED = "expired"


class ProviderState(str, Enum):
    """Provider status after vocabulary mapping."""
    PAID = "paid"
    PENDING = "pending"
    EXPIRED = "expired"


@dataclass(frozen=True)
class FeeSchedule:
    id: str | None
    percentage: Decimal
    fixed: Decimal

    @classmethod
    def from_row(cls, row: dict) -> "FeeSchedule":
        return cls(
            id=row.get("id"),
            percentage=Decimal(str(row.get("pix_percentage") or 0)),
            fixed=Decimal(str(row.get("pix_fixed") or 0)),
        )


@dataclass
class ChargeRequest:
    amount_cents: int
    user_id: str | None = None
    donor_name: str | None = None
    product_name: str | None = None
    popup_model: str | None = None
    utm_data: dict = field(default_factory=dict)


def cents_to_reais(amount_cents: int) -> Decimal:
    return (Decimal(amount_cents) / 100).quantize(Decimal("0.01"))


def reais_to_cents(value) -> int:
    """Provider amounts arrive as float, str or Decimal reais ("10,50" included)."""
    if value is None or value == "":
        return 0
    text = str(value).strip().replace(",", ".") if isinstance(value, str) else str(value)
    try:
        return int((Decimal(text) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except ArithmeticError:
        return 0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_provider_datetime(value, tz_name: str) -> datetime | None:
    """Provider timestamps: ISO 8601 or 'YYYY-MM-DD HH:MM:SS' in local time."""
    if not value:
        return None
    text = str(value).strip().replace("Z", "+00:00")
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        try:
            dt = datetime.strptime(text[:19], "%d/%m/%Y %H:%M:%S")
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(tz_name))
    return dt.astimezone(timezone.utc)


def local_date(dt: datetime, tz_name: str) -> str:
    """Calendar date of an instant in the reporting timezone (YYYY-MM-DD)."""
    return dt.astimezone(ZoneInfo(tz_name)).strftime("%Y-%m-%d")
