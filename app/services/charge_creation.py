"""
Criação de cobrança PIX.

Resolves fee schedule and acquirer for the merchant, synthesizes the payer the
acquirer requires, submits once (no retry), normalizes the response and records
the ledger row with the fees frozen at this moment.
"""
import logging
import time

import httpx

from app.config import Settings
from app.models.transactions import Acquirer, ChargeRequest, PixStatus, local_date, utc_now
from app.services import ledger
from app.services.credentials import resolve_fee_config, resolve_user_acquirer
from app.services.customer_data import build_customer, generate_txid
from app.services.errors import AcquirerHTTPError, InvalidAmountError, ResponseShapeError, TokenError
from app.services.gateways.base import ChargeContext
from app.services.gateways.registry import get_gateway
from app.services.monitoring import record_event

logger = logging.getLogger(__name__)

DEFAULT_PRODUCT_NAME = "Anônimo"

WEBHOOK_PATHS = {
    Acquirer.SPEDPAY: "/webhooks/spedpay",
    Acquirer.ATIVUS: "/webhooks/ativus",
}


def resolve_product_name(db, request: ChargeRequest) -> str:
    """Explicit name, else the merchant's checkout offer for this popup model, else any offer."""
    if request.product_name and request.product_name.strip():
        return request.product_name.strip()
    if not request.user_id:
        return DEFAULT_PRODUCT_NAME

    query = db.table("checkout_offers").select("product_name").eq("user_id", request.user_id)
    if request.popup_model:
        query = query.eq("popup_model", request.popup_model)
    result = query.order("updated_at", desc=True).limit(1).execute()
    rows = result.data or []
    if rows and (rows[0].get("product_name") or "").strip():
        return rows[0]["product_name"]
    return DEFAULT_PRODUCT_NAME


def _resolve_merchant_acquirer(db, settings: Settings, user_id: str | None) -> Acquirer:
    return (
        resolve_user_acquirer(db, settings, user_id)
        or Acquirer.parse(settings.default_acquirer)
        or Acquirer.SPEDPAY
    )


async def create_charge(
    db,
    settings: Settings,
    request: ChargeRequest,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict:
    """Returns {success, pixCode, qrCodeUrl, txid, transactionId}.

    txid is the local prefixed reference; transactionId is the ledger key, which
    is the acquirer's own id when it assigns one (SpedPay, Ativus).

    Raises InvalidAmountError, CredentialMissingError, AcquirerHTTPError,
    ResponseShapeError or TokenError. No ledger row is written on failure.
    """
    if not isinstance(request.amount_cents, int) or request.amount_cents <= 0:
        raise InvalidAmountError(f"amount_cents must be a positive integer, got {request.amount_cents!r}")

    fees = resolve_fee_config(db, request.user_id)
    acquirer = _resolve_merchant_acquirer(db, settings, request.user_id)
    gateway = get_gateway(acquirer, db, settings, request.user_id, transport)
    gateway.require_credentials()

    local_txid = generate_txid(acquirer.value)
    customer = build_customer(request.donor_name)
    webhook_path = WEBHOOK_PATHS.get(acquirer)
    ctx = ChargeContext(
        txid=local_txid,
        amount_cents=request.amount_cents,
        customer=customer,
        user_id=request.user_id,
        product_name=resolve_product_name(db, request),
        popup_model=request.popup_model,
        utm_data=request.utm_data or {},
        webhook_url=f"{settings.base_url.rstrip('/')}{webhook_path}" if webhook_path else None,
    )

    logger.info(
        "Creating PIX via %s: R$ %.2f user=%s txid=%s",
        acquirer.value, request.amount_cents / 100, request.user_id, local_txid,
    )
    start = time.monotonic()
    try:
        data = await gateway.submit_charge(ctx)
        charge = gateway.normalize_charge(data, local_txid)
    except (AcquirerHTTPError, ResponseShapeError, TokenError, httpx.HTTPError) as e:
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.error(f"{acquirer.value} charge creation failed: {e}")
        record_event(db, acquirer.value, "failure", elapsed_ms, str(e))
        if isinstance(e, httpx.HTTPError):
            raise AcquirerHTTPError(acquirer.value, 0, str(e)) from e
        raise
    finally:
        await gateway.aclose()
    elapsed_ms = int((time.monotonic() - start) * 1000)

    txid = charge.provider_id if gateway.uses_provider_id else local_txid
    now = utc_now()
    row = {
        "txid": txid,
        "external_ref": local_txid if txid != local_txid else None,
        "user_id": request.user_id,
        "acquirer": acquirer.value,
        "amount_cents": request.amount_cents,
        "status": PixStatus.GENERATED.value,
        "fee_percentage": str(fees.percentage) if fees else None,
        "fee_fixed": str(fees.fixed) if fees else None,
        "donor_name": customer.name,
        "donor_cpf": customer.cpf,
        "donor_email": customer.email,
        "donor_phone": customer.phone,
        "product_name": ctx.product_name,
        "popup_model": request.popup_model,
        "utm_data": request.utm_data or None,
        "pix_code": charge.pix_code,
        "created_at": now.isoformat(),
        "created_date_brazil": local_date(now, settings.reporting_timezone),
    }
    ledger.insert_transaction(db, row)
    record_event(db, acquirer.value, "success", elapsed_ms)
    logger.info("PIX created via %s: txid=%s (%dms)", acquirer.value, txid, elapsed_ms)

    return {
        "success": True,
        "pixCode": charge.pix_code,
        "qrCodeUrl": charge.qr_code_url,
        "txid": local_txid,
        "transactionId": txid,
    }
