"""
Reconciliação / backfill a partir do histórico da Ativus.

Replays the acquirer's transaction history (by period, or by explicit IDs when
the list endpoint is unavailable) and inserts ledger rows that are missing.
Ownership of each record is inferred from the seller field or the metadata the
charge was created with, unless a target merchant is pinned.

Reruns over the same input insert nothing: every record is checked against
txid and external_ref before insertion.
"""
import asyncio
import logging
import re
from dataclasses import dataclass

import httpx

from app.config import Settings
from app.models.transactions import (
    Acquirer, PixStatus, ProviderState, local_date, parse_provider_datetime, utc_now,
)
from app.services import ledger
from app.services.credentials import resolve_fee_config
from app.services.errors import CredentialMissingError, GatewayError
from app.services.gateways.ativus import AtivusGateway, AtivusRecord

logger = logging.getLogger(__name__)

RECONCILED_PRODUCT_NAME = "Recuperado via Reconciliação"
RECONCILED_POPUP_MODEL = "reconciled"

_SELLER_RE = re.compile(
    r"^seller_([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})$", re.IGNORECASE
)
_METADATA_USER_KEYS = ("user_id", "userId", "seller_id")


@dataclass(frozen=True)
class Resolved:
    user_id: str


@dataclass(frozen=True)
class Unresolved:
    reason: str


@dataclass
class ReconcileRequest:
    target_user_id: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    transaction_ids: list[str] | None = None


def _merchant_exists(db, user_id: str, cache: dict) -> bool:
    if user_id not in cache:
        result = db.table("profiles").select("id").eq("id", user_id).limit(1).execute()
        cache[user_id] = bool(result.data)
    return cache[user_id]


def resolve_owner(db, record: AtivusRecord, cache: dict) -> Resolved | Unresolved:
    """Seller field (seller_<uuid>) first, then the metadata map."""
    candidates = []
    match = _SELLER_RE.match(record.seller or "")
    if match:
        candidates.append(match.group(1))
    for key in _METADATA_USER_KEYS:
        value = record.metadata.get(key)
        if isinstance(value, str) and value:
            candidates.append(value)

    if not candidates:
        return Unresolved("no_owner_hint")
    for candidate in dict.fromkeys(candidates):
        if _merchant_exists(db, candidate, cache):
            return Resolved(candidate)
    return Unresolved("unknown_merchant")


def _build_row(record: AtivusRecord, user_id: str, fees, state: ProviderState, settings: Settings) -> dict:
    tz = settings.reporting_timezone
    created_at = parse_provider_datetime(record.created_at, tz) or utc_now()
    status = {
        ProviderState.PAID: PixStatus.PAID,
        ProviderState.EXPIRED: PixStatus.EXPIRED,
    }.get(state, PixStatus.GENERATED)

    row = {
        "txid": record.id_transaction,
        "external_ref": record.external_ref if record.external_ref != record.id_transaction else None,
        "user_id": user_id,
        "acquirer": Acquirer.ATIVUS.value,
        "amount_cents": record.amount_cents,
        "status": status.value,
        "fee_percentage": str(fees.percentage) if fees else None,
        "fee_fixed": str(fees.fixed) if fees else None,
        "donor_name": record.name,
        "donor_cpf": record.cpf,
        "donor_email": record.email,
        "product_name": RECONCILED_PRODUCT_NAME,
        "popup_model": RECONCILED_POPUP_MODEL,
        "created_at": created_at.isoformat(),
        "created_date_brazil": local_date(created_at, tz),
    }
    if status is PixStatus.PAID:
        row["paid_at"] = created_at.isoformat()
        row["paid_date_brazil"] = local_date(created_at, tz)
    elif status is PixStatus.EXPIRED:
        row["expired_at"] = created_at.isoformat()
    return row


async def reconcile(
    db,
    settings: Settings,
    request: ReconcileRequest,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep=asyncio.sleep,
) -> dict:
    if not (request.start_date and request.end_date) and not request.transaction_ids:
        raise ValueError("Provide start_date and end_date, or transaction_ids")

    gateway = AtivusGateway(db, settings, user_id=request.target_user_id, transport=transport)
    if not gateway.load_credentials():
        raise CredentialMissingError(Acquirer.ATIVUS.value, gateway.credential_key)

    results: list[dict] = []
    records: list[AtivusRecord] = []
    list_available = True

    if request.start_date and request.end_date:
        listed = await gateway.list_transactions(request.start_date, request.end_date)
        if listed is None:
            list_available = False
            logger.warning("Reconcile: list endpoint unavailable, falling back to transaction IDs")
        else:
            records.extend(listed)
            logger.info("Reconcile: %d transactions listed for %s..%s", len(listed), request.start_date, request.end_date)

    seen = {r.id_transaction for r in records}
    for i, tx_id in enumerate(request.transaction_ids or []):
        tx_id = (tx_id or "").strip()
        if not tx_id or tx_id in seen:
            continue
        seen.add(tx_id)
        if ledger.find_existing(db, [tx_id]):
            results.append({"id": tx_id, "status": "already_exists"})
            continue
        if i > 0:
            await sleep(settings.batch_delay_seconds)
        try:
            record = await gateway.get_transaction(tx_id)
        except (GatewayError, httpx.HTTPError) as e:
            logger.error(f"Reconcile: lookup failed for {tx_id}: {e}")
            results.append({"id": tx_id, "status": "error", "error": str(e)[:200]})
            continue
        if record is None:
            results.append({"id": tx_id, "status": "not_found"})
            continue
        seen.add(record.id_transaction)
        records.append(record)

    owner_cache: dict = {}
    for record in records:
        item = {"id": record.id_transaction, "amount_cents": record.amount_cents}
        try:
            existing = ledger.find_existing(db, [record.id_transaction, record.external_ref])
            if existing:
                item["status"] = "already_exists"
                results.append(item)
                continue

            if request.target_user_id:
                owner = Resolved(request.target_user_id)
            else:
                owner = resolve_owner(db, record, owner_cache)
            if isinstance(owner, Unresolved):
                item.update(status="user_not_found", reason=owner.reason)
                results.append(item)
                continue

            if record.amount_cents <= 0:
                item.update(status="skipped", reason="invalid_amount")
                results.append(item)
                continue

            fees = resolve_fee_config(db, owner.user_id)
            state = gateway.map_status(record.situacao)
            ledger.insert_transaction(db, _build_row(record, owner.user_id, fees, state, settings))
            item.update(status="imported", user_id=owner.user_id, mapped_status=state.value)
            logger.info("Reconcile: imported %s for user %s (%s)", record.id_transaction, owner.user_id, state.value)
        except Exception as e:
            logger.error(f"Reconcile: failed to import {record.id_transaction}: {e}")
            item.update(status="error", error=str(e)[:200])
        results.append(item)

    summary = {
        "total": len(results),
        "imported": sum(1 for r in results if r["status"] == "imported"),
        "already_exists": sum(1 for r in results if r["status"] == "already_exists"),
        "skipped": sum(1 for r in results if r["status"] == "skipped"),
        "not_found": sum(1 for r in results if r["status"] == "not_found"),
        "user_not_found": sum(1 for r in results if r["status"] == "user_not_found"),
        "errors": sum(1 for r in results if r["status"] == "error"),
    }
    logger.info("Reconcile complete: %s", summary)
    return {
        "success": True,
        "list_endpoint_available": list_available,
        "results": results,
        "summary": summary,
    }
