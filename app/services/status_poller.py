"""
Verificação de status de cobranças PIX pendentes.

check_status: one transaction, on demand.
run_batch_check: cron-triggered sweep over the newest pending rows, strictly
sequential with a fixed pause between provider calls. Per-item failures are
reported and never abort the batch.
"""
import asyncio
import logging

import httpx

from app.config import Settings
from app.models.transactions import PixStatus, ProviderState
from app.services import ledger
from app.services.acquirer_detector import resolve_acquirer
from app.services.errors import GatewayError, TransactionNotFoundError
from app.services.gateways.registry import GatewayPool

logger = logging.getLogger(__name__)


async def _check_row(db, settings: Settings, row: dict, pool: GatewayPool, user_cache: dict) -> dict:
    txid = row["txid"]
    acquirer = resolve_acquirer(db, settings, row, user_cache)
    result = {"txid": txid, "acquirer": acquirer.value}

    gateway = pool.get(acquirer, row.get("user_id"))
    if gateway is None:
        result.update(status="skipped", reason=f"{acquirer.value}_not_configured")
        return result

    provider = await gateway.fetch_status(txid, row.get("external_ref"))
    result["provider_status"] = provider.raw_status

    if not provider.found:
        result["status"] = "not_found"
        return result

    if provider.state is ProviderState.PAID:
        try:
            changed = ledger.mark_paid(db, txid, settings.reporting_timezone, provider.paid_at)
        except Exception as e:
            logger.error(f"Failed to mark {txid} as paid: {e}")
            result.update(status="update_error", error=str(e)[:200])
            return result
        result["status"] = "updated_to_paid" if changed else "already_paid"
    elif provider.state is ProviderState.EXPIRED:
        changed = ledger.mark_expired(db, txid)
        result["status"] = "updated_to_expired" if changed else "already_final"
    else:
        # Unknown vocabulary lands here too; provider_status carries the raw string
        result["status"] = "still_pending"
    return result


async def check_status(
    db,
    settings: Settings,
    transaction_id: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict:
    """Status de uma transação. Paid rows short-circuit without calling the provider."""
    row = ledger.get_transaction(db, transaction_id)
    if row is None:
        raise TransactionNotFoundError(f"transaction {transaction_id} not found")

    if row.get("status") == PixStatus.PAID.value:
        return {"txid": row["txid"], "status": "paid", "paid_at": row.get("paid_at")}
    if row.get("status") == PixStatus.EXPIRED.value:
        return {"txid": row["txid"], "status": "expired"}

    pool = GatewayPool(db, settings, transport)
    try:
        result = await _check_row(db, settings, row, pool, {})
    finally:
        await pool.aclose()

    if result.get("status") in ("updated_to_paid", "already_paid"):
        paid = ledger.get_by_txid(db, row["txid"]) or {}
        return {**result, "status": "paid", "paid_at": paid.get("paid_at")}
    return result


async def run_batch_check(
    db,
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep=asyncio.sleep,
) -> dict:
    rows = ledger.list_pending(db, settings.batch_page_size)
    logger.info("Batch status check: %d pending transactions", len(rows))

    pool = GatewayPool(db, settings, transport)
    user_cache: dict = {}
    results: list[dict] = []
    try:
        for i, row in enumerate(rows):
            if i > 0:
                await sleep(settings.batch_delay_seconds)
            try:
                item = await _check_row(db, settings, row, pool, user_cache)
            except (GatewayError, httpx.HTTPError) as e:
                logger.error(f"Status check failed for {row.get('txid')}: {e}")
                item = {"txid": row.get("txid"), "status": "error", "error": str(e)[:200]}
            except Exception as e:
                logger.exception("Unexpected error checking %s", row.get("txid"))
                item = {"txid": row.get("txid"), "status": "error", "error": str(e)[:200]}
            results.append(item)
    finally:
        await pool.aclose()

    summary = {
        "checked": len(results),
        "updated": sum(1 for r in results if r["status"] in ("updated_to_paid", "updated_to_expired")),
        "skipped": sum(1 for r in results if r["status"] == "skipped"),
        "errored": sum(1 for r in results if r["status"] in ("error", "update_error")),
    }
    logger.info(
        "Batch status check complete: %d checked, %d updated, %d skipped, %d errors",
        summary["checked"], summary["updated"], summary["skipped"], summary["errored"],
    )
    return {**summary, "results": results}
