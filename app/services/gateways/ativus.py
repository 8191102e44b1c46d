"""
Adquirente Ativus Hub.

Basic auth with the merchant API key. Besides charge creation and status,
Ativus exposes its transaction history, which the reconciliation engine replays.
"""
import base64
import json
import logging
import re
from dataclasses import dataclass, field

from app.models.transactions import Acquirer, cents_to_reais, parse_provider_datetime, reais_to_cents
from app.services.errors import AcquirerHTTPError, ResponseShapeError
from app.services.gateways.base import AcquirerGateway, ChargeContext, ProviderStatus, pick

logger = logging.getLogger(__name__)

_B64_RE = re.compile(r"^[A-Za-z0-9+/]+=*$")

# Placeholder address, required by the API for every customer
_DEFAULT_ADDRESS = {
    "street": "Rua Exemplo",
    "streetNumber": "100",
    "complement": "N/A",
    "zipCode": "01001000",
    "neighborhood": "Centro",
    "city": "São Paulo",
    "state": "SP",
    "country": "br",
}


def basic_auth_value(api_key: str) -> str:
    """Keys already delivered base64-encoded (long, base64 alphabet) are sent as-is."""
    if _B64_RE.match(api_key) and len(api_key) > 50:
        return api_key
    return base64.b64encode(api_key.encode("utf-8")).decode("ascii")


@dataclass
class AtivusRecord:
    """Uma transação do histórico Ativus, normalizada."""

    id_transaction: str
    external_ref: str | None
    name: str
    amount_cents: int
    situacao: str
    created_at: str | None
    cpf: str | None = None
    email: str | None = None
    seller: str | None = None
    metadata: dict = field(default_factory=dict)


def _parse_metadata(value) -> dict:
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except ValueError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def parse_record(tx: dict, fallback_id: str | None = None) -> AtivusRecord | None:
    tx_id = pick(tx, ("id_transaction", "idTransaction", "id", "txid")) or fallback_id
    if not tx_id:
        return None
    return AtivusRecord(
        id_transaction=tx_id,
        external_ref=pick(tx, ("externaRef", "externalRef", "external_ref", "customer.externaRef")),
        name=pick(tx, ("nome", "customer_name", "pagador", "customer.name")) or "Não informado",
        amount_cents=reais_to_cents(pick(tx, ("valor", "amount", "value"))),
        situacao=(pick(tx, ("situacao", "status")) or "AGUARDANDO_PAGAMENTO").upper(),
        created_at=pick(tx, ("data_transacao", "created_at", "data_criacao")),
        cpf=pick(tx, ("cpf", "documento", "customer.cpf")),
        email=pick(tx, ("email", "customer.email")),
        seller=pick(tx, ("id_seller", "seller_id", "seller")),
        metadata=_parse_metadata(tx.get("metadata")),
    )


class AtivusGateway(AcquirerGateway):
    name = Acquirer.ATIVUS
    credential_key = "ativus_api_key"
    uses_provider_id = True

    PIX_CODE_PATHS = (
        "paymentCode", "pix_copia_e_cola", "pixCopiaECola", "codigo_pix", "qrcode", "qr_code",
        "brcode", "pix.brcode", "pix.qrcode", "transaction.pix_copia_e_cola", "transaction.brcode",
    )
    QR_URL_PATHS = (
        "paymentCodeBase64", "qrcode_url", "qrcodeUrl", "qr_code_url",
        "pix.qrcode_url", "transaction.qrcode_url",
    )
    PROVIDER_ID_PATHS = ("idTransaction", "id", "transaction_id", "id_transaction")

    PAID_STATUSES = frozenset({"CONCLUIDO", "PAGO", "CONCLUÍDA", "PAID", "APPROVED"})
    EXPIRED_STATUSES = frozenset({"EXPIRADO", "EXPIRED", "CANCELADO", "CANCELLED", "REFUSED"})

    def _normalize_status(self, raw) -> str:
        return str(raw or "").strip().upper()

    def _headers(self) -> dict:
        return {
            "Authorization": f"Basic {basic_auth_value(self.api_key)}",
            "Content-Type": "application/json",
        }

    def build_payload(self, ctx: ChargeContext) -> dict:
        amount = float(cents_to_reais(ctx.amount_cents))
        utm = ctx.utm_data or {}
        return {
            "amount": amount,
            "id_seller": f"seller_{ctx.user_id or 'default'}",
            "ip": "177.38.123.45",
            "customer": {
                "name": ctx.customer.name,
                "email": ctx.customer.email,
                "cpf": ctx.customer.cpf,
                "phone": ctx.customer.phone,
                "externaRef": ctx.txid,
                "address": dict(_DEFAULT_ADDRESS),
            },
            "checkout": {
                key: utm.get(key, "")
                for key in ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")
            },
            "pix": {"expiresInDays": 1},
            "items": [{
                "title": ctx.product_name,
                "quantity": 1,
                "unitPrice": amount,
                "tangible": False,
            }],
            "postbackUrl": ctx.webhook_url,
            "metadata": json.dumps({"popup_model": ctx.popup_model, "user_id": ctx.user_id}),
            "traceable": True,
        }

    async def submit_charge(self, ctx: ChargeContext) -> dict:
        async with self._client() as client:
            resp = await client.post(
                self.settings.ativus_api_url, headers=self._headers(), json=self.build_payload(ctx)
            )
        return self._check(self.name.value, resp)

    async def _lookup(self, params: dict) -> dict | None:
        """None only when Ativus says the id is unknown (404, empty or erro body).
        Other HTTP failures raise AcquirerHTTPError; a non-JSON body raises ResponseShapeError."""
        async with self._client() as client:
            resp = await self._request_with_retry(
                client, "GET", self.settings.ativus_status_url, headers=self._headers(), params=params
            )
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            logger.warning(f"Ativus lookup {params} HTTP {resp.status_code}: {resp.text[:200]}")
            raise AcquirerHTTPError(self.name.value, resp.status_code, resp.text)
        try:
            data = resp.json()
        except ValueError:
            raise ResponseShapeError(self.name.value, f"JSON body ({resp.text[:200]})")
        if not isinstance(data, dict) or data.get("erro") or data.get("error") or not data.get("id_transaction"):
            return None
        return data

    async def fetch_status(self, txid: str, external_ref: str | None = None) -> ProviderStatus:
        data = await self._lookup({"id_transaction": txid})
        if data is None and external_ref:
            data = await self._lookup({"externaRef": external_ref})
        if data is None:
            return ProviderStatus(state=self.map_status(None), raw_status="not_found", found=False)
        raw = str(data.get("situacao") or data.get("status") or "").upper()
        # data_transacao is the creation time; only an explicit payment time is used
        paid_at = parse_provider_datetime(
            pick(data, ("paidAt", "paid_at", "data_pagamento")), self.settings.reporting_timezone
        )
        return ProviderStatus(state=self.map_status(raw), raw_status=raw, paid_at=paid_at)

    async def get_transaction(self, transaction_id: str) -> AtivusRecord | None:
        """Lookup por id_transaction, depois por externaRef."""
        data = await self._lookup({"id_transaction": transaction_id})
        if data is None:
            data = await self._lookup({"externaRef": transaction_id})
        if data is None:
            return None
        return parse_record(data, fallback_id=transaction_id)

    async def list_transactions(self, start_date: str, end_date: str) -> list[AtivusRecord] | None:
        """Histórico do período. None when the list endpoint is unavailable (404 or error body)."""
        async with self._client() as client:
            resp = await self._request_with_retry(
                client, "GET", self.settings.ativus_list_url, headers=self._headers(),
                params={"data_inicio": start_date, "data_fim": end_date},
            )
        if resp.status_code == 404:
            logger.warning("Ativus list endpoint not available (404)")
            return None
        if resp.status_code >= 400:
            logger.error(f"Ativus list HTTP {resp.status_code}: {resp.text[:200]}")
            return None
        try:
            data = resp.json()
        except ValueError:
            logger.error(f"Ativus list returned non-JSON body: {resp.text[:200]}")
            return None

        if isinstance(data, list):
            items = data
        elif isinstance(data, dict) and (data.get("erro") or data.get("error")):
            logger.warning(f"Ativus list error body: {str(data)[:200]}")
            return None
        elif isinstance(data, dict):
            items = next(
                (data[k] for k in ("transactions", "data", "resultado") if isinstance(data.get(k), list)),
                [],
            )
        else:
            items = []

        records = [parse_record(tx) for tx in items if isinstance(tx, dict)]
        return [r for r in records if r is not None]
