"""
Operações no ledger pix_transactions.

Status transitions are conditional updates (WHERE status='generated'), so a
webhook, the poller and a manual check racing on the same txid produce exactly
one transition and one settlement timestamp.
"""
import logging
import re
from datetime import datetime

from app.models.transactions import PixStatus, local_date, utc_now

logger = logging.getLogger(__name__)

TABLE = "pix_transactions"

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def get_by_txid(db, txid: str) -> dict | None:
    result = db.table(TABLE).select("*").eq("txid", txid).limit(1).execute()
    return result.data[0] if result.data else None


def get_transaction(db, transaction_id: str) -> dict | None:
    """Busca por id da linha (UUID), txid ou external_ref."""
    if _UUID_RE.match(transaction_id or ""):
        result = db.table(TABLE).select("*").eq("id", transaction_id).limit(1).execute()
        if result.data:
            return result.data[0]
    row = get_by_txid(db, transaction_id)
    if row:
        return row
    result = db.table(TABLE).select("*").eq("external_ref", transaction_id).limit(1).execute()
    return result.data[0] if result.data else None


def find_existing(db, refs: list[str]) -> dict | None:
    """Row whose txid or external_ref matches any of refs."""
    refs = [r for r in dict.fromkeys(refs) if r]
    if not refs:
        return None
    result = db.table(TABLE).select("id, txid, status").in_("txid", refs).limit(1).execute()
    if result.data:
        return result.data[0]
    result = db.table(TABLE).select("id, txid, status").in_("external_ref", refs).limit(1).execute()
    return result.data[0] if result.data else None


def insert_transaction(db, row: dict) -> dict:
    result = db.table(TABLE).insert(row).execute()
    return result.data[0] if result.data else row


def list_pending(db, limit: int) -> list[dict]:
    """Newest generated rows without settlement, up to limit."""
    result = (
        db.table(TABLE)
        .select("id, txid, user_id, acquirer, amount_cents, status, created_at")
        .eq("status", PixStatus.GENERATED.value)
        .is_("paid_at", "null")
        .not_.is_("txid", "null")
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )
    return result.data or []


def mark_paid(db, txid: str, tz_name: str, paid_at: datetime | None = None) -> bool:
    """generated -> paid. True only for the call that performed the transition."""
    paid_at = paid_at or utc_now()
    result = (
        db.table(TABLE)
        .update({
            "status": PixStatus.PAID.value,
            "paid_at": paid_at.isoformat(),
            "paid_date_brazil": local_date(paid_at, tz_name),
        })
        .eq("txid", txid)
        .eq("status", PixStatus.GENERATED.value)
        .execute()
    )
    transitioned = bool(result.data)
    if transitioned:
        logger.info("Transaction %s marked as paid", txid)
    return transitioned


def mark_expired(db, txid: str, expired_at: datetime | None = None) -> bool:
    expired_at = expired_at or utc_now()
    result = (
        db.table(TABLE)
        .update({"status": PixStatus.EXPIRED.value, "expired_at": expired_at.isoformat()})
        .eq("txid", txid)
        .eq("status", PixStatus.GENERATED.value)
        .execute()
    )
    return bool(result.data)
