"""
Webhook receivers das adquirentes (SpedPay, Ativus).
Always answers 200 so the acquirer does not retry forever; the poller is the
safety net for anything a webhook misses.
"""
import json
import logging
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Request

from app.config import Settings
from app.models.transactions import Acquirer, ProviderState, parse_provider_datetime
from app.routers.deps import db_dep, settings_dep
from app.services import ledger
from app.services.gateways.ativus import AtivusGateway
from app.services.gateways.base import pick
from app.services.gateways.spedpay import SpedPayGateway
from app.services.monitoring import record_event

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks")

ATIVUS_ID_PATHS = ("id_transaction", "transactionId", "id", "externalRef", "data.id", "data.externalRef")
ATIVUS_STATUS_PATHS = ("situacao", "status", "data.status", "data.situacao")
SPEDPAY_ID_PATHS = ("id", "transaction_id", "external_id", "data.id")
SPEDPAY_STATUS_PATHS = ("status", "payment_status", "data.status")
# Payment time only; data_transacao is when the charge was created
PAID_AT_PATHS = ("paidAt", "paid_at", "data_pagamento", "data.paidAt")


async def _parse_body(request: Request) -> dict:
    raw = await request.body()
    content_type = request.headers.get("content-type", "")
    if "application/x-www-form-urlencoded" in content_type:
        return dict(parse_qsl(raw.decode("utf-8", errors="replace")))
    try:
        payload = json.loads(raw or b"{}")
    except ValueError:
        return {"raw": raw.decode("utf-8", errors="replace")[:1000]}
    return payload if isinstance(payload, dict) else {"raw": payload}


def _settle(db, settings: Settings, tx_id: str, paid_at_raw) -> bool:
    """Mark paid by txid, or by external_ref when the webhook carries our local id."""
    paid_at = parse_provider_datetime(paid_at_raw, settings.reporting_timezone)
    if ledger.mark_paid(db, tx_id, settings.reporting_timezone, paid_at):
        return True
    existing = ledger.find_existing(db, [tx_id])
    if existing and existing["txid"] != tx_id:
        return ledger.mark_paid(db, existing["txid"], settings.reporting_timezone, paid_at)
    return False


async def _handle(
    request: Request, db, settings: Settings, acquirer: Acquirer, gateway_cls, id_paths, status_paths,
) -> dict:
    payload = await _parse_body(request)
    tx_id = pick(payload, id_paths)
    status = pick(payload, status_paths) or ""
    logger.info(f"{acquirer.value} webhook: id={tx_id} status={status}")

    if not tx_id:
        logger.warning(f"{acquirer.value} webhook without transaction id: {str(payload)[:200]}")
        return {"success": True, "message": "No transaction id"}

    state = gateway_cls(db, settings).map_status(status)
    if state is not ProviderState.PAID:
        return {"success": True, "message": f"Webhook received for status: {status}"}

    try:
        changed = _settle(db, settings, tx_id, pick(payload, PAID_AT_PATHS))
    except Exception as e:
        logger.error(f"{acquirer.value} webhook failed to mark {tx_id} as paid: {e}")
        record_event(db, acquirer.value, "failure", error_message=f"webhook mark_paid: {e}")
        return {"success": False, "message": "Failed to update payment status"}

    record_event(db, acquirer.value, "webhook")
    return {"success": True, "updated": changed, "txid": tx_id}


@router.post("/ativus")
async def ativus_webhook(request: Request, db=Depends(db_dep), settings: Settings = Depends(settings_dep)):
    return await _handle(
        request, db, settings, Acquirer.ATIVUS, AtivusGateway, ATIVUS_ID_PATHS, ATIVUS_STATUS_PATHS
    )


@router.post("/spedpay")
async def spedpay_webhook(request: Request, db=Depends(db_dep), settings: Settings = Depends(settings_dep)):
    return await _handle(
        request, db, settings, Acquirer.SPEDPAY, SpedPayGateway, SPEDPAY_ID_PATHS, SPEDPAY_STATUS_PATHS
    )
